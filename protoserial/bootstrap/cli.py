import logging

from google.protobuf import json_format
from google.protobuf.message import Error as ProtobufError

from protoserial.bootstrap.commands import dispatcher
from protoserial.bootstrap.config.loader import get_cli_args
from protoserial.bootstrap.deps import get_serializer
from protoserial.core.helpers.utils import setup_logging


def main():
    args = get_cli_args()
    setup_logging(args.log_level)
    logger = logging.getLogger("bootstrap.cli")

    try:
        print(dispatcher.dispatch(args.command, serializer=get_serializer(), namespace=args))
    except (ValueError, LookupError, TypeError, ProtobufError, json_format.Error) as ex:
        logger.debug(f"Command '{args.command}' failed", exc_info=ex)
        raise SystemExit(f"[protoserial] {ex}")


if __name__ == "__main__":
    main()
