import io
import unittest
from ctypes import create_unicode_buffer
from printbuf import ERROR, INT_MAX, StringBuffer, FileBuffer

class StringBufferTest(unittest.TestCase):
    def testFits(self):
        buf = create_unicode_buffer(8)
        out = StringBuffer(buf, 8)
        out.write("abc")
        out.write("de")
        self.assertEqual(5, out.n)
        self.assertEqual("abcde", buf.value)
        self.assertEqual("abcde", out.getvalue())
        self.assertEqual("\0", buf[5])

    def testTruncates(self):
        buf = create_unicode_buffer(4)
        out = StringBuffer(buf, 4)
        out.write("12345")
        self.assertEqual(5, out.n)
        self.assertEqual("123", buf.value)
        self.assertEqual("\0", buf[3])
        out.write("67")
        self.assertEqual(7, out.n)
        self.assertEqual("123", buf.value)

    def testCapacitySmallerThanBuffer(self):
        buf = create_unicode_buffer(16)
        out = StringBuffer(buf, 3)
        out.write("abcdef")
        self.assertEqual(6, out.n)
        self.assertEqual("ab", buf.value)

    def testZeroCapacity(self):
        out = StringBuffer(None, 0)
        out.write("abc")
        self.assertEqual(3, out.n)
        self.assertEqual("", out.getvalue())

    def testUnusableCapacity(self):
        buf = create_unicode_buffer(4)
        buf.value = "zzz"
        for capacity in (-1, INT_MAX + 1):
            out = StringBuffer(buf, capacity)
            out.write("x")
            self.assertEqual(1, out.n)
            self.assertEqual("", out.getvalue())
        self.assertEqual("zzz", buf.value)

    def testPrintf(self):
        buf = create_unicode_buffer(8)
        out = StringBuffer(buf, 8)
        out.printf("%5.2f", 3.14159)
        self.assertEqual(5, out.n)
        self.assertEqual(" 3.14", buf.value)

    def testNativeFailure(self):
        buf = create_unicode_buffer(8)
        out = StringBuffer(buf, 8)
        with self.assertLogs("printbuf", "WARNING") as logs:
            out.printf("%d", "x")
        self.assertIn("native format failed", logs.output[0])
        self.assertTrue(out.failed)
        out.write("abc")
        self.assertEqual(ERROR, out.n)
        self.assertEqual("", buf.value)

    def testOverflow(self):
        class SmallBuffer(StringBuffer):
            max_length = 5

        buf = create_unicode_buffer(16)
        out = SmallBuffer(buf, 16)
        out.write("abc")
        self.assertEqual(3, out.n)
        with self.assertLogs("printbuf", "WARNING") as logs:
            out.write("abc")
        self.assertIn("output buffer overflow", logs.output[0])
        self.assertEqual(ERROR, out.n)
        out.write("zzz")
        out.printf("%d", 1)
        self.assertEqual(ERROR, out.n)
        self.assertNotIn("z", buf.value)

class FileBufferTest(unittest.TestCase):
    def testCounts(self):
        stream = io.StringIO()
        out = FileBuffer(stream)
        out.write("abc")
        out.printf("%d", 42)
        self.assertEqual(5, out.n)
        self.assertEqual("abc42", stream.getvalue())

    def testWriteWithoutCount(self):
        class Collector(object):
            def __init__(self): self.parts = []
            def write(self, s): self.parts.append(s)

        stream = Collector()
        out = FileBuffer(stream)
        out.write("hello")
        self.assertEqual(5, out.n)
        self.assertEqual(["hello"], stream.parts)

    def testWriteError(self):
        class BrokenStream(object):
            def write(self, s): raise OSError("disk full")

        out = FileBuffer(BrokenStream())
        with self.assertLogs("printbuf", "WARNING") as logs:
            out.write("x")
        self.assertIn("stream write failed", logs.output[0])
        self.assertTrue(out.failed)

if __name__ == "__main__":
    unittest.main()
