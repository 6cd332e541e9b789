class BumpError(Exception):
    pass


class RepositoryError(BumpError):
    pass


class DetachedHeadError(RepositoryError):
    pass


class NoVersionChangeError(BumpError):
    pass


class IdentityError(BumpError):
    pass


class ObjectStoreError(BumpError):
    pass


class RefUpdateError(BumpError):
    pass


class SigningError(BumpError):
    pass


class SigningConfigError(SigningError):
    pass


class UnsupportedSigningFormatError(SigningError):
    pass


class AgentError(SigningError):
    pass
