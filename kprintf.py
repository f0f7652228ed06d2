"""An extensible implementation of C's printf family.

Control strings use the usual printf syntax: a directive is a percent
sign, optional flags (-, +, space, 0, #), an optional width (digits or
*), an optional precision (a period followed by digits or *), and a
type, such as d, lld, or s.  What kprintf adds is a way to define new
types: a Config supplies a matcher that recognizes type names at the
start of a string, and maps each to a handler.  A handler is called as

    handler(buf, spec, args)

where buf is the PrintBuffer to write to, spec the DirectiveSpec
describing the flags, width and precision of the directive, and args
the Arguments cursor, from which the handler must take exactly the
arguments that belong to it.  Types the matcher does not recognize are
tried against the standard printf directives, which are rendered with
Python's own % operator."""

import ctypes
import math
import numbers
import sys

from klog import get_logger
from printbuf import ERROR, INT_MAX, FileBuffer, StringBuffer

__all__ = ["FormatError", "ArgumentError", "Arguments", "DirectiveSpec",
           "Config", "match_table", "match_standard",
           "apply_control_string",
           "printf", "vprintf", "fprintf", "vfprintf",
           "snprintf", "vsnprintf", "asprintf", "vasprintf"]

logger = get_logger(__name__)

class FormatError(Exception):
    def __init__(self, control, *args):
        self.control = control
        self.args = args

    def __str__(self):
        return self.control % self.args if self.args else self.control

class ArgumentError(FormatError):
    """Raised when a directive runs out of arguments, or finds one of the
    wrong type."""
    pass

# Argument kinds

class Kind(object):
    """A C argument type, together with the Python types that may be passed
    in its place."""

    def __init__(self, name, types):
        self.name = name
        self.types = types

    def __repr__(self):
        return "<%s %s>" % (type(self).__name__, self.name)

    def accepts(self, value):
        return isinstance(value, self.types)

class CharKind(Kind):
    """Characters may be passed as code points or as one-character strings."""

    def __init__(self, name):
        super(CharKind, self).__init__(name, numbers.Integral)

    def accepts(self, value):
        if isinstance(value, str):
            return len(value) == 1
        return isinstance(value, numbers.Integral)

INT = Kind("int", numbers.Integral)
UINT = Kind("unsigned int", numbers.Integral)
LONG = Kind("long", numbers.Integral)
ULONG = Kind("unsigned long", numbers.Integral)
LLONG = Kind("long long", numbers.Integral)
ULLONG = Kind("unsigned long long", numbers.Integral)
INTMAX = Kind("intmax_t", numbers.Integral)
UINTMAX = Kind("uintmax_t", numbers.Integral)
SIZE = Kind("size_t", numbers.Integral)
PTRDIFF = Kind("ptrdiff_t", numbers.Integral)
DOUBLE = Kind("double", numbers.Real)
LONG_DOUBLE = Kind("long double", numbers.Real)
CHAR = CharKind("int")
WINT = CharKind("wint_t")
STRING = Kind("char *", (str, type(None)))
WSTRING = Kind("wchar_t *", (str, type(None)))
POINTER = Kind("void *", object)

class Arguments(object):
    """The arguments of a single formatting call.  Essentially a read-only
    list with a cursor that only moves forward: each directive takes what
    it needs from the front, in order."""

    def __init__(self, args):
        self.args = tuple(args)
        self.len = len(self.args)
        self.cur = 0

    def __len__(self): return self.len

    @property
    def empty(self):
        return self.cur == self.len

    @property
    def remaining(self):
        return self.len - self.cur

    def next(self, kind=None):
        """Consume the next argument.  If a kind is given, the argument must
        be acceptable as a value of that kind."""
        cur = self.cur
        if cur == self.len:
            raise ArgumentError("too few arguments: %s expected at position %d",
                                kind.name if kind else "argument", cur)
        arg = self.args[cur]
        if kind is not None and not kind.accepts(arg):
            raise ArgumentError("argument %d: %s expected, got %s",
                                cur, kind.name, type(arg).__name__)
        self.cur = cur + 1
        return arg

    def copy(self):
        """Return an independent cursor positioned at the same argument."""
        other = Arguments(self.args)
        other.cur = self.cur
        return other

# Directive specifications

flag_attributes = {"-": "left_justify", "+": "force_sign", " ": "space_pad",
                   "0": "zero_pad", "#": "alternate_form"}

class DirectiveSpec(object):
    """Everything the parser knows about one directive: its flags, its
    width and precision, and where in the control string it lies.

    The width and precision are each None if absent, a non-negative int
    (at most INT_MAX) if given literally, or DirectiveSpec.variable if
    given as * and therefore to be taken from the arguments.  The
    positions start, type and end index the percent sign, the first
    character of the type, and the first character after the directive."""

    variable = object()

    def __init__(self, control, start):
        self.control = control
        self.start = start
        self.type = self.end = None
        self.left_justify = self.force_sign = self.space_pad = False
        self.zero_pad = self.alternate_form = False
        self.width = self.precision = None

    def __str__(self): return self.control[self.start:self.end]
    def __len__(self): return self.end - self.start

    @property
    def type_name(self):
        return self.control[self.type:self.end]

    def flags(self):
        return "".join(char for char, attr in flag_attributes.items()
                           if getattr(self, attr))

    def param(self, value, args, default):
        if value is DirectiveSpec.variable:
            value = ctypes.c_int(args.next(INT)).value
        return default if value is None else value

    def get_width(self, args, default=None):
        """Return the width, consuming an argument if it is given as *."""
        return self.param(self.width, args, default)

    def get_precision(self, args, default=None):
        """Return the precision, consuming an argument if it is given as *."""
        return self.param(self.precision, args, default)

# Configuration & custom matchers

class Config(object):
    """Per-call configuration.  The only setting is match_spec, a function
    of a control string and an index that returns a (handler, end) pair if
    a custom type starts at that index, or None otherwise."""

    def __init__(self, match_spec=None):
        self.match_spec = match_spec

    @classmethod
    def from_table(cls, table):
        return cls(match_table(table))

def match_table(table):
    """Return a matcher for a sequence of (type name, handler) pairs.  The
    pairs are tried in order and the first type name that prefixes the
    string wins, so a name must come before any of its prefixes: "kk"
    before "k"."""
    table = tuple(table)
    for name, handler in table:
        assert name, "empty type name"
        assert name[0] not in "-+ 0#*%", "type name %r starts with a flag" % name
        assert callable(handler), "invalid handler for %r" % name

    def match_spec(control, index):
        for name, handler in table:
            if control.startswith(name, index):
                return handler, index + len(name)
        return None
    return match_spec

# Standard directives

def fragment(flags, width, precision, conversion):
    """Build a format for Python's % operator."""
    return "%" + flags + \
        ("" if width is None else str(width)) + \
        ("" if precision is None else "." + str(precision)) + \
        conversion

class Conversion(object):
    """Base class for the standard directives.  An instance handles one
    type, e.g. lld, and knows both which arguments that type takes and
    how to rebuild a native format for it, so that the arguments consumed
    and the arguments formatted are always the same."""

    conversion = None

    def __init__(self, token, kind):
        self.token = token
        self.kind = kind
        if self.conversion is None:
            self.conversion = token[-1]

    def __repr__(self):
        return "<%s %s>" % (type(self).__name__, self.token)

    def arguments(self, spec):
        """Return the kinds of the arguments consumed for spec, in order."""
        kinds = []
        if spec.width is DirectiveSpec.variable:
            kinds.append(INT)
        if spec.precision is DirectiveSpec.variable:
            kinds.append(INT)
        kinds.append(self.kind)
        return kinds

    def __call__(self, buf, spec, args):
        values = [args.next(kind) for kind in self.arguments(spec)]
        flags = spec.flags()
        width = spec.width
        if width is DirectiveSpec.variable:
            width = ctypes.c_int(values.pop(0)).value
            if width < 0:
                # A negative width is taken as a - flag and a positive width.
                flags += "-"
                width = -width
        precision = spec.precision
        if precision is DirectiveSpec.variable:
            precision = ctypes.c_int(values.pop(0)).value
            if precision < 0:
                precision = None
        (value,) = values
        self.format(buf, flags, width, precision, value)

    def format(self, buf, flags, width, precision, value):
        buf.printf(fragment(flags, width, precision, self.conversion), value)

class StoreCount(Conversion):
    """The %n family: store the number of characters output so far through
    a pointer, here a ctypes object of the appropriate type."""

    def arguments(self, spec):
        return [self.kind]

    def __call__(self, buf, spec, args):
        args.next(self.kind).value = buf.n

class Integer(Conversion):
    def __init__(self, token, kind, bits, signed):
        super(Integer, self).__init__(token, kind)
        self.bits = bits
        self.signed = signed
        if self.conversion in "iu":
            self.conversion = "d"

    def format(self, buf, flags, width, precision, value):
        value = int(value) & ((1 << self.bits) - 1)
        octal_zero = False
        if self.signed:
            if value >> (self.bits - 1):
                value -= 1 << self.bits
        else:
            flags = flags.replace("+", "").replace(" ", "")
            if "#" in flags and self.conversion == "o":
                # C makes the first digit a zero; Python would write 0o.
                flags = flags.replace("#", "")
                octal_zero = True
                digits = "%o" % value
                if value and (precision is None or precision <= len(digits)):
                    precision = len(digits) + 1
            elif "#" in flags and value == 0:
                flags = flags.replace("#", "")
        if precision is not None:
            # With a precision, the 0 flag is ignored.
            flags = flags.replace("0", "")
            if precision == 0 and value == 0 and not octal_zero:
                # No digits at all, only the sign and the padding.
                sign = "+" if "+" in flags else " " if " " in flags else ""
                buf.printf(fragment("-" if "-" in flags else "", width,
                                    None, "s"), sign)
                return
        super(Integer, self).format(buf, flags, width, precision, value)

class Floating(Conversion):
    pass

def hexfloat(x, precision=None, alternate=False):
    """Return the C99 hexadecimal representation (%a) of abs(x)."""
    x = abs(x)
    if math.isinf(x):
        return "inf"
    elif math.isnan(x):
        return "nan"
    mantissa, exponent = float.hex(x)[2:].split("p")
    lead, frac = mantissa.split(".")
    if precision is None:
        frac = frac.rstrip("0")
    elif precision < len(frac):
        # Round half to even on the hex digits; the lead digit may carry.
        shift = 4 * (len(frac) - precision)
        q, r = divmod(int(lead + frac, 16), 1 << shift)
        half = 1 << (shift - 1)
        if r > half or (r == half and q & 1):
            q += 1
        lead = "%x" % (q >> (4 * precision))
        frac = "%0*x" % (precision, q & ((1 << (4 * precision)) - 1)) \
            if precision else ""
    else:
        frac = frac.ljust(precision, "0")
    point = "." if frac or alternate else ""
    return "0x%s%s%sp%+d" % (lead, point, frac, int(exponent))

class HexFloat(Conversion):
    """The %a and %A directives.  Python's % operator has no hexadecimal
    floats, so the digits come from float.hex, and only the padding is
    left to %."""

    def format(self, buf, flags, width, precision, value):
        value = float(value)
        body = hexfloat(value, precision, "#" in flags)
        sign = "-" if math.copysign(1.0, value) < 0 and not math.isnan(value) \
                   else "+" if "+" in flags \
                   else " " if " " in flags \
                   else ""
        if width and "0" in flags and "-" not in flags and \
                math.isfinite(value):
            body = body[:2] + body[2:].rjust(width - len(sign) - 2, "0")
        s = sign + body
        if self.conversion == "A":
            s = s.upper()
        buf.printf(fragment("-" if "-" in flags else "", width, None, "s"), s)

class Character(Conversion):
    conversion = "c"

class Text(Conversion):
    conversion = "s"

    def format(self, buf, flags, width, precision, value):
        super(Text, self).format(buf, flags, width, precision,
                                 "(null)" if value is None else value)

pointer_mask = (1 << (8 * ctypes.sizeof(ctypes.c_void_p))) - 1

class Pointer(Conversion):
    """The %p directive.  Integers are taken to be addresses already; any
    other object is identified by its id."""

    def format(self, buf, flags, width, precision, value):
        if value is None:
            address = 0
        elif isinstance(value, numbers.Integral):
            address = int(value) & pointer_mask
        else:
            address = id(value)
        if address:
            buf.printf(fragment(flags.replace("#", "") + "#", width, None, "x"),
                       address)
        else:
            buf.printf(fragment("-" if "-" in flags else "", width, None, "s"),
                       "(nil)")

standard_directives = dict()

def register_directive(token, conversion):
    assert 1 <= len(token) <= 3, "standard types have at most three characters"
    assert isinstance(conversion, Conversion), "invalid conversion"
    standard_directives[token] = conversion

def bits(ctype):
    return 8 * ctypes.sizeof(ctype)

# Length modifiers for integer conversions: the argument kinds for signed
# and unsigned conversions, and the width of the type the value is
# converted to.  Arguments narrower than int are promoted, so hh and h
# take ints.
integer_modifiers = {
    "":   (INT, UINT, bits(ctypes.c_int)),
    "hh": (INT, INT, bits(ctypes.c_byte)),
    "h":  (INT, INT, bits(ctypes.c_short)),
    "l":  (LONG, ULONG, bits(ctypes.c_long)),
    "ll": (LLONG, ULLONG, bits(ctypes.c_longlong)),
    "j":  (INTMAX, UINTMAX, bits(ctypes.c_int64)),
    "z":  (SIZE, SIZE, bits(ctypes.c_size_t)),
    "t":  (PTRDIFF, PTRDIFF, bits(ctypes.c_ssize_t)),
}

count_modifiers = {
    "":   Kind("int *", ctypes.c_int),
    "hh": Kind("unsigned char *", (ctypes.c_ubyte, ctypes.c_byte)),
    "h":  Kind("short *", ctypes.c_short),
    "l":  Kind("long *", ctypes.c_long),
    "ll": Kind("long long *", ctypes.c_longlong),
    "j":  Kind("intmax_t *", ctypes.c_int64),
    "z":  Kind("size_t *", ctypes.c_size_t),
    "t":  Kind("ptrdiff_t *", ctypes.c_ssize_t),
}

float_modifiers = {"": DOUBLE, "l": DOUBLE, "L": LONG_DOUBLE}

for modifier, (signed, unsigned, nbits) in integer_modifiers.items():
    for char in "di":
        register_directive(modifier + char,
                           Integer(modifier + char, signed, nbits, True))
    for char in "ouxX":
        register_directive(modifier + char,
                           Integer(modifier + char, unsigned, nbits, False))

for modifier, kind in count_modifiers.items():
    register_directive(modifier + "n", StoreCount(modifier + "n", kind))

for modifier, kind in float_modifiers.items():
    for char in "eEfFgG":
        register_directive(modifier + char, Floating(modifier + char, kind))
    for char in "aA":
        register_directive(modifier + char, HexFloat(modifier + char, kind))

register_directive("c", Character("c", CHAR))
register_directive("lc", Character("lc", WINT))
register_directive("s", Text("s", STRING))
register_directive("ls", Text("ls", WSTRING))
register_directive("p", Pointer("p", POINTER))

def match_standard(control, index):
    """Match a standard printf type at control[index]."""
    # No standard type is a prefix of another, so the order of the sizes
    # tried does not matter.
    for size in (3, 2, 1):
        token = control[index:index + size]
        if len(token) == size and token in standard_directives:
            return standard_directives[token], index + size
    return None

# Parsing

digits = "0123456789"

def extract_int(control, i):
    """Parse the run of digits starting at control[i], saturating at INT_MAX.
    Return the value and the index of the first character after the run."""
    end = len(control)
    n = 0
    while i < end and control[i] in digits:
        n = n * 10 + digits.index(control[i])
        i += 1
        if n >= INT_MAX:
            while i < end and control[i] in digits:
                i += 1
            return INT_MAX, i
    return n, i

def extract_spec(match_spec, control, start):
    """Parse the directive whose percent sign is at control[start].  Return
    a (handler, spec) pair, or None if no handler could be found for it."""
    spec = DirectiveSpec(control, start)
    end = len(control)
    i = start + 1

    while i < end and control[i] in flag_attributes:
        setattr(spec, flag_attributes[control[i]], True)
        i += 1

    if i < end and control[i] in "123456789":
        spec.width, i = extract_int(control, i)
    elif control.startswith("*", i):
        spec.width = DirectiveSpec.variable
        i += 1

    if control.startswith(".", i):
        i += 1
        if i < end and control[i] in digits:
            spec.precision, i = extract_int(control, i)
        elif control.startswith("*", i):
            spec.precision = DirectiveSpec.variable
            i += 1
        elif i < end and control[i] in "-+ #.":
            # Only a flag or a second period after the period is malformed;
            # anything else leaves a precision of zero.
            return None
        else:
            spec.precision = 0

    spec.type = i
    match = match_spec(control, i) if match_spec else None
    if match is None:
        match = match_standard(control, i)
        if match is None:
            return None
    handler, spec.end = match
    return handler, spec

def apply_control_string(buf, control, args, config=None):
    """Format args according to control, writing the output to buf.
    Return the number of characters output (whether or not buf had room
    for them), or ERROR."""
    assert isinstance(control, str), "control string must be a string"
    if not isinstance(args, Arguments):
        args = Arguments(args)
    match_spec = config.match_spec if config else None

    i = 0
    end = len(control)
    while i < end:
        percent = control.find("%", i)
        if percent == -1:
            buf.write(control[i:end])
            break
        elif percent > i:
            buf.write(control[i:percent])

        if control.startswith("%", percent + 1):
            buf.write("%")
            i = percent + 2
            continue

        directive = extract_spec(match_spec, control, percent)
        if directive is None:
            # Not a directive after all; the percent sign is just text.
            logger.debug("unmatched directive", control=control, index=percent)
            buf.write("%")
            i = percent + 1
            continue
        handler, spec = directive
        handler(buf, spec, args)
        i = spec.end
    return buf.n

# The printf family

def vfprintf(stream, control, args, config=None):
    return apply_control_string(FileBuffer(stream), control, args, config)

def fprintf(stream, control, *args, config=None):
    return vfprintf(stream, control, args, config)

def vprintf(control, args, config=None):
    return vfprintf(sys.stdout, control, args, config)

def printf(control, *args, config=None):
    return vfprintf(sys.stdout, control, args, config)

def vsnprintf(buf, n, control, args, config=None):
    """Write at most n - 1 characters and a terminating NUL into buf, a
    ctypes character array such as create_unicode_buffer makes.  If n is
    zero, buf may be None, and only the length is computed."""
    return apply_control_string(StringBuffer(buf, n), control, args, config)

def snprintf(buf, n, control, *args, config=None):
    return vsnprintf(buf, n, control, args, config)

def vasprintf(control, args, config=None):
    """Format into a freshly allocated buffer of exactly the right size.
    Return a (length, string) pair, or (ERROR, None) if formatting failed
    or produced nothing."""
    if not isinstance(args, Arguments):
        args = Arguments(args)
    length = vsnprintf(None, 0, control, args.copy(), config)
    if length <= 0 or length == INT_MAX:
        logger.debug("asprintf length rejected", length=length)
        return ERROR, None
    try:
        buf = ctypes.create_unicode_buffer(length + 1)
    except MemoryError:
        logger.warning("asprintf allocation failed", length=length)
        return ERROR, None
    if vsnprintf(buf, length + 1, control, args, config) != length:
        return ERROR, None
    return length, buf[:length]

def asprintf(control, *args, config=None):
    return vasprintf(control, args, config)
