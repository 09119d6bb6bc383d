"""This package contains the XML-RPC wire codec: the encoder turning a method call
into a request document, and the decoder turning a response body back into
a value, classified as a normal return value or a fault.

Values are plain Python objects (int, float, bool, str, bytes, datetime,
list, dict and None for the non-standard nil).
"""

class XMLRPCError(Exception):
    """Base class for errors raised by this package"""
    pass

class MalformedDocumentError(XMLRPCError):
    """The response body could not be parsed as XML"""
    pass

class Fault(object):
    """A fault returned by the remote peer in place of a return value.

    A fault is a struct holding faultCode and faultString. The accessors are
    views onto that struct, missing entries read as 0 and "".
    """
    def __init__(self, value):
        self._value = value if isinstance(value, dict) else {}

    @property
    def value(self):
        return self._value

    @property
    def code(self):
        return self._value.get("faultCode", 0)

    @property
    def message(self):
        return self._value.get("faultString", "")

    @staticmethod
    def is_fault(value):
        """Structural fault detection, for callers working with raw values"""
        return isinstance(value, dict) and "faultCode" in value

    def __eq__(self, other):
        return isinstance(other, Fault) and self._value == other._value

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return "<Fault %s: %r>"%(self.code, self.message)

class Response(object):
    """The decoded reply to a single call"""
    def __init__(self, value, is_fault=False):
        self.value = value
        self.is_fault = is_fault

    @property
    def fault(self):
        """The Fault view of the value, or None for a normal return value"""
        return Fault(self.value) if self.is_fault else None

    def __eq__(self, other):
        return isinstance(other, Response) and (self.value, self.is_fault) == (other.value, other.is_fault)

    def __ne__(self, other):
        return not self == other

    def __repr__(self):
        return "<Response %s %r>"%("fault" if self.is_fault else "success", self.value)

from async_xmlrpc.codec.encoder import Encoder, encode
from async_xmlrpc.codec.decoder import Decoder, decode
