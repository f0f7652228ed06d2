"""Output buffers for kprintf.

A PrintBuffer hides whether output goes into a fixed-size character
array or onto a stream.  Either way it counts the characters that would
have been written if there were room for all of them, which is what the
printf family returns."""

from ctypes import c_int, create_unicode_buffer, sizeof

from klog import get_logger

__all__ = ["INT_MAX", "ERROR", "PrintBuffer", "StringBuffer", "FileBuffer"]

INT_MAX = 2 ** (8 * sizeof(c_int) - 1) - 1
ERROR = -1

logger = get_logger(__name__)

class PrintBuffer(object):
    """Base class for output buffers.  The attribute n holds the number of
    characters output so far (ignoring the actual size of the buffer), or
    ERROR once something has gone wrong; after that, all output is
    silently discarded."""

    max_length = INT_MAX

    def __init__(self):
        self.n = 0

    @property
    def failed(self):
        return self.n == ERROR

    def write(self, s):
        """Output the string s verbatim."""
        raise NotImplementedError

    def printf(self, fragment, *values):
        """Output values formatted by the native % operator."""
        self.vprintf(fragment, values)

    def vprintf(self, fragment, values):
        if self.n == ERROR:
            return
        try:
            s = fragment % tuple(values)
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("native format failed", fragment=fragment, error=str(e))
            self.n = ERROR
            return
        self.write(s)

    def advance(self, count):
        n = self.n + count
        if n > self.max_length:
            logger.warning("output buffer overflow", length=n,
                           limit=self.max_length)
            n = ERROR
        self.n = n

class StringBuffer(PrintBuffer):
    """A buffer writing into a fixed-capacity character array, such as one
    made by ctypes.create_unicode_buffer.  The array always holds a
    terminating NUL after the characters written so far; characters past
    the capacity are dropped, but still counted.

    A capacity that is not a positive int degrades to a private
    one-character array: nothing is written, but lengths are still
    computed, which is how snprintf measures output."""

    def __init__(self, buffer, capacity):
        super(StringBuffer, self).__init__()
        if 0 < capacity <= INT_MAX:
            assert buffer is not None, "no buffer for nonzero capacity"
            assert capacity <= len(buffer), "capacity exceeds buffer size"
            self.buffer = buffer
            self.max_len = capacity - 1
        else:
            self.buffer = create_unicode_buffer(1)
            self.max_len = 0
        self.length = 0
        self.buffer[0] = "\0"

    def write(self, s):
        if self.n == ERROR:
            return
        count = len(s)
        room = min(count, self.max_len - self.length)
        if room > 0:
            self.buffer[self.length:self.length + room] = s[:room]
            self.length += room
        self.buffer[self.length] = "\0"
        self.advance(count)

    def getvalue(self):
        return self.buffer[:self.length]

class FileBuffer(PrintBuffer):
    """A buffer writing to a text stream.  Counts what the stream reports
    as written."""

    def __init__(self, stream):
        super(FileBuffer, self).__init__()
        self.stream = stream

    def write(self, s):
        if self.n == ERROR:
            return
        try:
            count = self.stream.write(s)
        except OSError as e:
            logger.warning("stream write failed", error=str(e))
            self.n = ERROR
            return
        self.advance(len(s) if count is None else count)
