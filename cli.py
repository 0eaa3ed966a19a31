"""Dev CLI for where-the-bus."""

import os
import subprocess
import sys

COMMANDS = {
    "dev": "Run uvicorn in development mode with auto-reload (mock feeds)",
    "start": "Run uvicorn in production mode",
    "check-config": "Validate settings from the environment and exit",
}

APP = "where_the_bus.main:app"


def dev():
    subprocess.run(
        [
            sys.executable,
            "-m",
            "uvicorn",
            APP,
            "--reload",
            "--host",
            "0.0.0.0",
            "--port",
            "8000",
        ],
        env={"MOCK_MODE": "true", **os.environ},
    )


def start():
    subprocess.run(
        [
            sys.executable,
            "-m",
            "uvicorn",
            APP,
            "--host",
            "0.0.0.0",
            "--port",
            "8000",
        ],
    )


def check_config():
    from where_the_bus.config import Settings
    from where_the_bus.exceptions import ConfigError

    try:
        settings = Settings().validate()
    except ConfigError as exc:
        print(f"Config error ({exc.parameter}): {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"deployment context: {settings.deployment_context}")
    print(f"mock mode:          {settings.mock_mode}")
    print(f"service area:       {settings.service_area}")
    print(f"feed ttl:           {settings.feed_ttl:g}s")
    print(f"geofence bucket:    {settings.geofence_bucket_meters:g}m")


def usage():
    print("Usage: uv run cli.py <command>\n")
    print("Commands:")
    for name, desc in COMMANDS.items():
        print(f"  {name:14s} {desc}")
    sys.exit(1)


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        usage()

    cmd = sys.argv[1]
    dispatch = {
        "dev": dev,
        "start": start,
        "check-config": check_config,
    }
    dispatch[cmd]()


if __name__ == "__main__":
    main()
