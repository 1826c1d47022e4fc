import socket

ENCODING = "utf-8"
CHUNK_SIZE = 4096
MAX_LINE = 64 * 1024


def send_line(sock, text):
    """
    Encode and send one protocol line over a socket, ending with a newline.
    """
    sock.sendall((text + '\n').encode(ENCODING))


def recv_line(sock):
    """
    Receive one newline-terminated line from a socket and return it without
    the terminator. Raises ConnectionError if the peer closes first.
    """
    buffer = b""
    while b'\n' not in buffer:
        chunk = sock.recv(CHUNK_SIZE)
        if not chunk:
            raise ConnectionError("Socket closed while receiving data.")
        buffer += chunk
        if len(buffer) > MAX_LINE:
            raise ConnectionError("Line too long.")

    line = buffer.split(b'\n', 1)[0]
    return line.decode(ENCODING, errors="replace").rstrip('\r')


class LineReader:
    """Reads successive lines from a long-lived connection."""

    def __init__(self, sock):
        self.sock = sock
        self.buffer = b""
        self.closed = False

    def readline(self):
        """Next line without its terminator, or None once the peer has closed."""
        while b'\n' not in self.buffer:
            if self.closed:
                return None
            chunk = self.sock.recv(CHUNK_SIZE)
            if not chunk:
                return None
            self.buffer += chunk
            if len(self.buffer) > MAX_LINE:
                raise ConnectionError("Line too long.")

        line, self.buffer = self.buffer.split(b'\n', 1)
        return line.decode(ENCODING, errors="replace").rstrip('\r')

    def close(self):
        self.closed = True
        self.buffer = b""


def shutdown_quietly(sock):
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
