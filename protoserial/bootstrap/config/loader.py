import argparse
import os
from functools import lru_cache
from pathlib import Path

from protoserial.core.models.route import Side


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protoserial",
        description=(
            "Encode and decode protobuf messages addressed by route name.\n\n"
            "Message types are described by a .proto schema and bound to routes\n"
            "by a JSON mapping, both declared in the configuration file."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a protoserial configuration file"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity.\n"
            "Choose among: DEBUG, INFO, WARNING, ERROR, CRITICAL.\n\n"
            "Example:\n"
            "  --log-level DEBUG"
        ),
    )

    commands = parser.add_subparsers(dest="command", required=True)

    routes = commands.add_parser("routes", help="List the mapped routes and their message types")

    encode = commands.add_parser("encode", help="Encode a JSON message to hex wire bytes")
    encode.add_argument("route", help="Route name, e.g. onNewUser")
    encode.add_argument("json", help="Message in protobuf JSON format")

    decode = commands.add_parser("decode", help="Decode hex wire bytes to a JSON message")
    decode.add_argument("route", help="Route name, e.g. onNewUser")
    decode.add_argument("hex", help="Hex encoded wire bytes")

    for sub in (routes, decode):
        sub.add_argument(
            "-o", "--output",
            default="json",
            choices=["json", "yaml"],
            help="Output format (default: json)"
        )

    for sub in (encode, decode):
        sub.add_argument(
            "--side",
            type=Side,
            default=Side.server,
            choices=list(Side),
            help="Which message type of the route to use (default: server)"
        )

    return parser


@lru_cache
def get_cli_args() -> argparse.Namespace:
    return build_parser().parse_args()


@lru_cache
def get_configfile() -> Path:
    args = get_cli_args()

    # Priority: CLI > ENV > default file in current working directory
    raw = args.config or os.getenv("PROTOSERIALCONFIG")

    if raw is None:
        file = Path.cwd() / "protoserial.yaml"
    else:
        file = Path(raw)

    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            "  - Use --config <file.yaml>\n"
            "  - Or set the PROTOSERIALCONFIG environment variable\n"
            "  - Or place a 'protoserial.yaml' file in the current working directory."
        )

    return file
