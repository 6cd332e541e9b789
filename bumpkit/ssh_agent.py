import logging
import os
import socket
import struct

from .errors import AgentError
from .models import Identity
from .sshsig import encode_string, read_string, read_uint32

logger = logging.getLogger(__name__)

AUTH_SOCK_ENV = "SSH_AUTH_SOCK"

SSH_AGENT_FAILURE = 5
SSH2_AGENTC_REQUEST_IDENTITIES = 11
SSH2_AGENT_IDENTITIES_ANSWER = 12
SSH2_AGENTC_SIGN_REQUEST = 13
SSH2_AGENT_SIGN_RESPONSE = 14

SSH_AGENT_RSA_SHA2_512 = 0x04

MAX_MESSAGE_SIZE = 256 * 1024


class AgentClient:
    """Minimal ssh-agent client: list identities and request signatures."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    @classmethod
    def connect(cls, path: str | None = None, timeout: float | None = 10.0) -> "AgentClient":
        path = path or os.environ.get(AUTH_SOCK_ENV)
        if not path:
            raise AgentError(f"{AUTH_SOCK_ENV} environment variable not set")
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect(path)
        except OSError as e:
            sock.close()
            raise AgentError(f"failed to connect to SSH agent at {path}: {e}") from e
        return cls(sock)

    def __enter__(self) -> "AgentClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._sock.close()

    def _recv_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining:
            chunk = self._sock.recv(remaining)
            if not chunk:
                raise AgentError("SSH agent closed the connection")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def request(self, message_type: int, body: bytes = b"") -> tuple[int, bytes]:
        message = bytes([message_type]) + body
        try:
            self._sock.sendall(struct.pack(">I", len(message)) + message)
            (length,) = struct.unpack(">I", self._recv_exact(4))
            if length == 0 or length > MAX_MESSAGE_SIZE:
                raise AgentError(f"invalid SSH agent response length {length}")
            response = self._recv_exact(length)
        except OSError as e:
            raise AgentError(f"SSH agent communication failed: {e}") from e
        return response[0], response[1:]

    def list_identities(self) -> list[Identity]:
        response_type, body = self.request(SSH2_AGENTC_REQUEST_IDENTITIES)
        if response_type != SSH2_AGENT_IDENTITIES_ANSWER:
            raise AgentError(f"failed to list SSH agent identities (response type {response_type})")
        count, offset = read_uint32(body, 0)
        identities = []
        for _ in range(count):
            key_blob, offset = read_string(body, offset)
            comment, offset = read_string(body, offset)
            identities.append(Identity(key_blob=key_blob, comment=comment.decode("utf-8", "replace")))
        logger.debug("SSH agent offers %d identities", len(identities))
        return identities

    def sign(self, identity: Identity, data: bytes) -> bytes:
        """Return the SSH wire signature the agent produced over ``data``."""
        flags = SSH_AGENT_RSA_SHA2_512 if identity.key_type == "ssh-rsa" else 0
        body = encode_string(identity.key_blob) + encode_string(data) + struct.pack(">I", flags)
        response_type, response = self.request(SSH2_AGENTC_SIGN_REQUEST, body)
        if response_type == SSH_AGENT_FAILURE:
            raise AgentError("SSH agent refused to sign")
        if response_type != SSH2_AGENT_SIGN_RESPONSE:
            raise AgentError(f"unexpected SSH agent response type {response_type}")
        signature, _ = read_string(response, 0)
        return signature
