import argparse
import sys

import uvicorn

from . import config


def main() -> int:
    parser = argparse.ArgumentParser(prog="origin-race")
    parser.add_argument("--host", default=config.HOST, help="Bind address")
    parser.add_argument("--port", type=int, default=config.PORT, help="Bind port")
    args = parser.parse_args()

    # Winner cache is per process, so a single worker keeps every request on one cache
    uvicorn.run("origin_race.main:app", host=args.host, port=args.port, workers=1)
    return 0


if __name__ == "__main__":
    sys.exit(main())
