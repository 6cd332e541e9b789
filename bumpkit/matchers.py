import re
from functools import cached_property

from pydantic import BaseModel, ConfigDict

from .models import FileType

class LineMatcher(BaseModel):
    """Decides whether a changed line belongs to the version bump.

    The rule is picked by ``file_type``:

    * GENERIC: the line mentions ``version`` or either version string.
    * DEPENDENCY_LISTING: ``<crate> = "<version>"`` with the crate name
      hyphenated or underscored, as in README install snippets.
    * LOCK_FILE: ``name = "<crate>"`` or ``version = "<version>"``. The two
      are matched independently, so another package that happens to share
      the old or new version number is also treated as part of the bump.
    """

    model_config = ConfigDict(frozen=True)

    file_type: FileType = FileType.GENERIC
    crate_name: str = ""
    old_version: str
    new_version: str

    @cached_property
    def patterns(self) -> list[re.Pattern]:
        versions = [re.escape(self.old_version), re.escape(self.new_version)]
        if self.file_type == FileType.DEPENDENCY_LISTING:
            names = {self.crate_name.replace("_", "-"), self.crate_name.replace("-", "_")}
            return [
                re.compile(rf'{re.escape(name)}(\s|[-_])?\s*=\s*"{version}"')
                for name in sorted(names)
                for version in versions
            ]
        if self.file_type == FileType.LOCK_FILE:
            patterns = [re.compile(rf'name\s*=\s*"{re.escape(self.crate_name)}"')]
            patterns += [re.compile(rf'version\s*=\s*"{version}"') for version in versions]
            return patterns
        return []

    def is_relevant(self, line: str) -> bool:
        if self.file_type == FileType.GENERIC:
            return "version" in line or self.old_version in line or self.new_version in line
        return any(pattern.search(line) for pattern in self.patterns)

def matcher_for(file_type: FileType, crate_name: str, old_version: str, new_version: str) -> LineMatcher:
    return LineMatcher(
        file_type=file_type,
        crate_name=crate_name,
        old_version=old_version,
        new_version=new_version,
    )
