import hashlib
import os
import tempfile
import zlib
from pathlib import Path

from .errors import ObjectStoreError
from .models import EntryMode, Tree, TreeEntry

OBJECT_KINDS = ("blob", "tree", "commit", "tag")

def encode_object(kind: str, body: bytes) -> bytes:
    if kind not in OBJECT_KINDS:
        raise ObjectStoreError(f"unknown object kind '{kind}'")
    return kind.encode() + b" " + str(len(body)).encode() + b"\x00" + body

def hash_object(kind: str, body: bytes) -> str:
    return hashlib.sha1(encode_object(kind, body)).hexdigest()

def decode_object(raw: bytes) -> tuple[str, bytes]:
    header, sep, body = raw.partition(b"\x00")
    if not sep:
        raise ObjectStoreError("object header is not terminated")
    kind, _, size = header.partition(b" ")
    if not size.isdigit():
        raise ObjectStoreError(f"malformed object header {header!r}")
    if int(size) != len(body):
        raise ObjectStoreError(f"object size mismatch: header says {int(size)}, got {len(body)}")
    return kind.decode(), body

def tree_sort_key(entry: TreeEntry) -> bytes:
    name = entry.name.encode("utf-8", "surrogateescape")
    if entry.is_tree:
        name += b"/"
    return name

def serialize_tree(tree: Tree) -> bytes:
    chunks = []
    for entry in sorted(tree.entries, key=tree_sort_key):
        try:
            raw_id = bytes.fromhex(entry.object_id)
        except ValueError as e:
            raise ObjectStoreError(f"invalid object id for '{entry.name}': {entry.object_id}") from e
        chunks.append(
            entry.mode.value.encode()
            + b" "
            + entry.name.encode("utf-8", "surrogateescape")
            + b"\x00"
            + raw_id
        )
    return b"".join(chunks)

def parse_tree(body: bytes) -> Tree:
    entries = []
    pos = 0
    while pos < len(body):
        space = body.index(b" ", pos)
        null = body.index(b"\x00", space)
        mode = body[pos:space].decode()
        name = body[space + 1:null].decode("utf-8", "surrogateescape")
        object_id = body[null + 1:null + 21].hex()
        if len(object_id) != 40:
            raise ObjectStoreError("truncated tree entry")
        try:
            entry_mode = EntryMode(mode.lstrip("0"))
        except ValueError as e:
            raise ObjectStoreError(f"unknown tree entry mode {mode} for '{name}'") from e
        entries.append(TreeEntry(mode=entry_mode, name=name, object_id=object_id))
        pos = null + 21
    return Tree(entries=entries)

def loose_object_path(objects_dir: Path, object_id: str) -> Path:
    return objects_dir / object_id[:2] / object_id[2:]

def write_loose_object(objects_dir: Path, kind: str, body: bytes) -> str:
    raw = encode_object(kind, body)
    object_id = hashlib.sha1(raw).hexdigest()
    dest_path = loose_object_path(objects_dir, object_id)
    if dest_path.exists():
        return object_id
    tmp_name = None
    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=dest_path.parent, prefix="tmp_obj_")
        with os.fdopen(fd, "wb") as f_out:
            f_out.write(zlib.compress(raw))
        os.chmod(tmp_name, 0o444)
        os.replace(tmp_name, dest_path)
    except OSError as e:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
        raise ObjectStoreError(f"failed to write {kind} object {object_id}: {e}") from e
    return object_id

def read_loose_object(objects_dir: Path, object_id: str) -> tuple[str, bytes] | None:
    path = loose_object_path(objects_dir, object_id)
    if not path.exists():
        return None
    try:
        return decode_object(zlib.decompress(path.read_bytes()))
    except (OSError, zlib.error, ObjectStoreError) as e:
        raise ObjectStoreError(f"failed to read object {object_id}: {e}") from e
