import argparse

from .config import load_config
from .server import run_server


def main() -> None:
    cfg = load_config()
    parser = argparse.ArgumentParser(prog="shotsetsd", description="Screenshot sets backend")
    parser.add_argument("serve", nargs="?", default="serve", help=argparse.SUPPRESS)
    parser.add_argument("--host", default=cfg.api.host)
    parser.add_argument("--port", type=int, default=cfg.api.port)
    args = parser.parse_args()
    run_server(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
