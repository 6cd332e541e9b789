import logging
import sys

import argparse
from bumpkit.commands import map_command
from bumpkit.errors import BumpError

def main():
    parser = argparse.ArgumentParser(description="Commit version bumps without the rest of the working copy")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # commit command
    commit_parser = subparsers.add_parser("commit", help="Commit only the version lines of the bumped files")
    commit_parser.add_argument("--manifest-path", required=True, help="Manifest whose version was bumped")
    commit_parser.add_argument("--crate", required=True, help="Package name")
    commit_parser.add_argument("--from", dest="old_version", required=True, help="Version before the bump")
    commit_parser.add_argument("--to", dest="new_version", required=True, help="Version after the bump")
    commit_parser.add_argument("--lock", required=False, help="Lock file to commit our package's entry from")
    commit_parser.add_argument("--readme", required=False, help="README with install snippets to commit")
    commit_parser.add_argument("--file", action="append", help="Other file to commit version lines from")

    # signing-config command
    config_parser = subparsers.add_parser("signing-config", help="Show the commit signing configuration")
    config_parser.add_argument("--path", default=".", help="Directory inside the repository")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        map_command(args.command)(args)
    except BumpError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
