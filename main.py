#main.py  ==  bank node entry point
           #↳ loads and validates config.yaml
           #↳ serves the bank protocol on app_port
           #↳ operator console until 'exit'
import argparse
import sys
import threading

from banknode.config import load_config
from banknode.logs import add_file_handlers, get_logger, set_console_level
from banknode.peer.peer import BankNode
from banknode.protocol.errors import ConfigError, InternalError

logger = get_logger("banknode.main")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="banknode", description="P2P bank node.")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--no-cli", action="store_true", help="serve until interrupted, without the console")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.critical(f"ER Failed to load app configuration: {e}")
        return 1

    set_console_level(config.log_level)
    if config.log_dir:
        add_file_handlers(config.log_dir)

    try:
        node = BankNode(config)
        node.start_service()
    except (InternalError, OSError) as e:
        logger.critical(f"Bank node failed to start: {e}")
        return 1

    if args.no_cli:
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            pass
        node.shutdown()
    else:
        node.run_cli()
    return 0


if __name__ == "__main__":
    sys.exit(main())
