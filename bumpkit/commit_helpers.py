import re
import time

from .errors import ObjectStoreError
from .models import Commit, Signature

SIGNATURE_HEADER = "gpgsig"

_SIGNATURE_LINE = re.compile(r"^(?P<name>.*) <(?P<email>[^<>]*)> (?P<seconds>-?\d+) (?P<offset>[+-]\d{4})$")

def format_offset(offset_minutes: int) -> str:
    sign = "+" if offset_minutes >= 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"{sign}{hours:02d}{minutes:02d}"

def parse_offset(text: str) -> int:
    minutes = int(text[1:3]) * 60 + int(text[3:5])
    return -minutes if text[0] == "-" else minutes

def format_signature(sig: Signature) -> str:
    return f"{sig.name} <{sig.email}> {sig.seconds} {format_offset(sig.offset_minutes)}"

def parse_signature(text: str) -> Signature:
    match = _SIGNATURE_LINE.match(text)
    if match is None:
        raise ObjectStoreError(f"malformed signature line: {text!r}")
    return Signature(
        name=match["name"],
        email=match["email"],
        seconds=int(match["seconds"]),
        offset_minutes=parse_offset(match["offset"]),
    )

def now_signature(name: str, email: str, seconds: int | None = None) -> Signature:
    return Signature(
        name=name,
        email=email,
        seconds=int(time.time()) if seconds is None else seconds,
        offset_minutes=0,
    )

def _header_lines(tree_id: str, parent_id: str | None, author: Signature, committer: Signature) -> list[bytes]:
    lines = [f"tree {tree_id}\n".encode()]
    if parent_id:
        lines.append(f"parent {parent_id}\n".encode())
    lines.append(f"author {format_signature(author)}\n".encode())
    lines.append(f"committer {format_signature(committer)}\n".encode())
    return lines

def build_payload(
    tree_id: str,
    parent_id: str | None,
    author: Signature,
    committer: Signature,
    message: str,
) -> bytes:
    lines = _header_lines(tree_id, parent_id, author, committer)
    return b"".join(lines) + b"\n" + message.encode()

def format_extra_header(name: str, value: bytes) -> bytes:
    # the only place continuation lines are indented
    if value.endswith(b"\n"):
        value = value[:-1]
    first, *rest = value.split(b"\n")
    out = name.encode() + b" " + first + b"\n"
    for line in rest:
        out += b" " + line + b"\n"
    return out

def serialize_commit(commit: Commit) -> bytes:
    lines = _header_lines(commit.tree_id, commit.parent_id, commit.author, commit.committer)
    for name, value in commit.extra_headers:
        lines.append(format_extra_header(name, value))
    return b"".join(lines) + b"\n" + commit.message.encode()

def parse_commit(body: bytes) -> Commit:
    header_block, sep, message = body.partition(b"\n\n")
    if not sep:
        header_block, message = body.rstrip(b"\n"), b""
    headers: list[tuple[str, bytes]] = []
    for line in header_block.split(b"\n"):
        if line.startswith(b" ") and headers:
            name, value = headers[-1]
            headers[-1] = (name, value + b"\n" + line[1:])
            continue
        name, _, value = line.partition(b" ")
        headers.append((name.decode(), value))

    tree_id = None
    parent_ids = []
    author = committer = None
    extra_headers = []
    for name, value in headers:
        if name == "tree":
            tree_id = value.decode()
        elif name == "parent":
            parent_ids.append(value.decode())
        elif name == "author":
            author = parse_signature(value.decode())
        elif name == "committer":
            committer = parse_signature(value.decode())
        else:
            extra_headers.append((name, value))
    if tree_id is None or author is None or committer is None:
        raise ObjectStoreError("commit is missing tree, author or committer")
    return Commit(
        tree_id=tree_id,
        parent_ids=parent_ids,
        author=author,
        committer=committer,
        message=message.decode("utf-8", "replace"),
        extra_headers=extra_headers,
    )
