"""
Top-level entry point: python -m ds_fleet <subcommand>

Subcommands:
    move: move targets (and dependents) to another compartment
    refresh: refresh target metadata
    tags: set environment/classification defined tags
    audit-trail: start audit trail collection
    select: resolve and print a selection, optionally save it
"""

import sys


USAGE = """\
usage: python -m ds_fleet <command> [options]

commands:
  move          Move targets (and their audit trails, assessments, policies) to another compartment
  refresh       Refresh Data Safe target metadata
  tags          Set environment / container / classification tags (preview unless --apply)
  audit-trail   Start audit trail collection on targets
  select        Resolve a target selection and print it (--save-json to keep it)

Run 'python -m ds_fleet <command> --help' for command-specific options.
"""


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    command = sys.argv[1]
    argv = sys.argv[2:]

    if command == "move":
        from .mover.cli import main as move_main
        move_main(argv)
    elif command == "refresh":
        from .cli import refresh_main
        refresh_main(argv)
    elif command == "tags":
        from .cli import tags_main
        tags_main(argv)
    elif command == "audit-trail":
        from .cli import audit_trail_main
        audit_trail_main(argv)
    elif command == "select":
        from .cli import select_main
        select_main(argv)
    else:
        print(f"Unknown command: {command}\n")
        print(USAGE)
        sys.exit(1)


if __name__ == "__main__":
    main()
