from collections import namedtuple

from banknode.logs import get_logger
from banknode.protocol.errors import BankNodeError, InternalError, ProtocolError

logger = get_logger(__name__)

VERBS = ("BC", "AC", "AD", "AW", "AB", "AR", "BA", "BN", "RP")
INTERNAL_ERROR_RESPONSE = "ER Internal server error"

Command = namedtuple("Command", ["verb", "args", "raw"])


def parse_line(line):
    """
    Split one protocol line into a Command. The verb is upper-cased, the
    arguments are left untouched, and the raw line (without terminator) is
    kept for forwarding.
    """
    if line is None or not line.strip():
        raise ProtocolError("Empty command")
    tokens = line.split()
    return Command(tokens[0].upper(), tuple(tokens[1:]), line.rstrip('\r\n'))


class CommandDispatcher:
    """Routes parsed commands to the handler registered for their verb."""

    def __init__(self, commands):
        self.registry = {verb: commands.handler_for(verb) for verb in VERBS}

    def dispatch(self, command):
        handler = self.registry.get(command.verb)
        if handler is None:
            logger.debug(f"Command not found: {command.verb}")
            return f"ER command not found: {command.verb}"
        try:
            return handler(command)
        except InternalError:
            logger.exception(f"Internal error while executing {command.verb}")
            return INTERNAL_ERROR_RESPONSE
        except BankNodeError as e:
            logger.error(f"Unhandled {type(e).__name__} while executing {command.verb}: {e}")
            return INTERNAL_ERROR_RESPONSE
        except Exception:
            logger.exception(f"Failed to execute command {command.verb}")
            return INTERNAL_ERROR_RESPONSE

    def handle_line(self, line):
        """Parse and dispatch one line. Returns None for blank lines."""
        try:
            command = parse_line(line)
        except ProtocolError:
            logger.debug("Ignoring empty line")
            return None
        logger.debug(f"Executing {command.verb} {' '.join(command.args)}")
        return self.dispatch(command)
