"""Commit signing.

Only SSH signatures are produced. The agent named by ``SSH_AUTH_SOCK`` is
tried first; if anything about that fails the private key file next to the
configured public key is used instead. OpenPGP is recognised in the
configuration so that it can be rejected with a useful message.
"""

import logging
from pathlib import Path
from typing import Callable

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from .errors import (
    AgentError,
    SigningConfigError,
    SigningError,
    UnsupportedSigningFormatError,
)
from .models import Identity, SigningConfig, SigningFormat
from .repository import Repository
from .ssh_agent import AgentClient
from .sshsig import (
    build_signed_data,
    fingerprint,
    parse_openssh_public_key,
    private_key_cipher,
    sign_payload,
    wrap_agent_signature,
)

logger = logging.getLogger(__name__)

KEY_LITERAL_PREFIX = "key::"

SigningStrategy = Callable[[str, bytes], bytes]


def read_signing_config(repo: Repository) -> SigningConfig:
    enabled = repo.read_config_bool("commit.gpgsign") or False
    raw_format = repo.read_config("gpg.format")
    if raw_format == SigningFormat.GPG.value:
        signing_format = SigningFormat.GPG
    else:
        signing_format = SigningFormat.SSH
    return SigningConfig(
        enabled=enabled,
        format=signing_format,
        signing_key=repo.read_config("user.signingkey") or None,
    )


def sign_commit_payload(config: SigningConfig, payload: bytes) -> bytes | None:
    if not config.enabled:
        return None
    if not config.signing_key:
        raise SigningConfigError(
            "commit signing is enabled but no signing key is configured.\n"
            "Please set user.signingkey in git config:\n"
            "  git config user.signingkey <key-path-or-id>"
        )
    if config.format == SigningFormat.GPG:
        raise UnsupportedSigningFormatError(
            "OpenPGP signing is not supported, use SSH signing instead:\n"
            "  git config gpg.format ssh\n"
            "  git config user.signingkey ~/.ssh/id_ed25519.pub"
        )
    signature = sign_with_ssh(config.signing_key, payload)
    return format_signature_for_header(signature)


def format_signature_for_header(signature: bytes) -> bytes:
    # continuation lines get their leading space when the commit is serialized
    return signature


def sign_with_ssh(
    signing_key: str,
    payload: bytes,
    strategies: list[tuple[str, SigningStrategy]] | None = None,
) -> bytes:
    if strategies is None:
        strategies = [("ssh-agent", sign_with_ssh_agent), ("key file", sign_with_ssh_file)]
    last_error: SigningError | None = None
    for name, strategy in strategies:
        logger.debug("trying SSH signing via %s", name)
        try:
            return strategy(signing_key, payload)
        except SigningError as e:
            logger.warning("SSH signing via %s failed (%s)", name, e)
            last_error = e
    if last_error is None:
        raise SigningError("no SSH signing strategy available")
    raise last_error


def sign_with_ssh_agent(signing_key: str, payload: bytes, agent: AgentClient | None = None) -> bytes:
    if agent is None:
        with AgentClient.connect() as client:
            return sign_with_ssh_agent(signing_key, payload, client)
    identities = agent.list_identities()
    identity = find_matching_identity(identities, signing_key)
    try:
        signature = agent.sign(identity, build_signed_data(payload))
    except SigningError as e:
        raise AgentError(f"SSH agent signing failed: {e}") from e
    return wrap_agent_signature(identity.key_blob, signature)


def _expand(path: str) -> Path:
    return Path(path).expanduser()


def _looks_like_path(signing_key: str) -> bool:
    return signing_key.endswith(".pub") or "/" in signing_key or "\\" in signing_key


def target_fingerprint(signing_key: str) -> str | None:
    """Fingerprint of the configured public key, when it names one."""
    if signing_key.startswith(KEY_LITERAL_PREFIX):
        key_blob, _ = parse_openssh_public_key(signing_key[len(KEY_LITERAL_PREFIX):])
        return fingerprint(key_blob)
    if not _looks_like_path(signing_key):
        return None
    pub_path = signing_key if signing_key.endswith(".pub") else signing_key + ".pub"
    try:
        text = _expand(pub_path).read_text()
        key_blob, _ = parse_openssh_public_key(text)
    except (OSError, SigningError) as e:
        logger.debug("could not read public key %s: %s", pub_path, e)
        return None
    return fingerprint(key_blob)


def find_matching_identity(identities: list[Identity], signing_key: str) -> Identity:
    wanted = target_fingerprint(signing_key)
    for identity in identities:
        key_fingerprint = identity.fingerprint
        if wanted is not None and key_fingerprint == wanted:
            return identity
        if key_fingerprint in signing_key or signing_key in key_fingerprint:
            return identity
        comment = identity.comment
        if comment and (comment in signing_key or signing_key in comment):
            return identity
    available = [identity.comment or identity.fingerprint for identity in identities]
    raise AgentError(f"no matching SSH key found in agent for '{signing_key}'.\nAvailable keys: {available}")


def private_key_path(signing_key: str) -> Path:
    return _expand(signing_key.removesuffix(".pub"))


def sign_with_ssh_file(signing_key: str, payload: bytes) -> bytes:
    if signing_key.startswith(KEY_LITERAL_PREFIX):
        raise SigningError("a literal key:: signing key can only be used through ssh-agent")
    key_path = private_key_path(signing_key)
    try:
        data = key_path.read_bytes()
    except OSError as e:
        raise SigningError(f"failed to read SSH private key from '{key_path}': {e}") from e
    encrypted_error = SigningError(
        f"SSH key '{key_path}' is encrypted. Please use ssh-agent or an unencrypted key.\n"
        f"Add the key to ssh-agent with: ssh-add {key_path}"
    )
    if private_key_cipher(data) not in (None, "none"):
        raise encrypted_error
    try:
        private_key = serialization.load_ssh_private_key(data, password=None)
    except TypeError as e:
        # raised when the key is encrypted and no password was given
        raise encrypted_error from e
    except (ValueError, UnsupportedAlgorithm) as e:
        raise SigningError(f"failed to parse SSH private key '{key_path}': {e}") from e
    return sign_payload(private_key, payload)
