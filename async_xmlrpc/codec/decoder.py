"""
XML-RPC response decoder.

Decoding is permissive: once the body parses as XML, missing nodes and
unparsable scalars degrade to empty or zero values instead of raising. Only
a body that isn't XML at all is an error.
"""

import re
import base64
import binascii
import logging

from lxml import etree

from async_xmlrpc.codec import MalformedDocumentError, Response
from async_xmlrpc.utils import parse_timestamp

logger = logging.getLogger(__name__)

def child_elements(element):
    """Iterate the child elements, skipping comments and processing instructions"""
    if element is None:
        return
    for child in element:
        if isinstance(child.tag, str):
            yield child

def first_child_element(element, tag=None):
    for child in child_elements(element):
        if tag is None or child.tag == tag:
            return child
    return None

def get_element_by_path(element, path):
    """Follow a path of tag names from element, returning None when any step is missing"""
    for tag in path:
        element = first_child_element(element, tag)
        if element is None:
            return None
    return element

def element_text(element):
    if element is None:
        return ""
    return "".join(element.itertext())

INT_RE = re.compile(r"^[+-]?[0-9]+$")
DOUBLE_RE = re.compile(r"^[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?$")

def to_int(text):
    text = text.strip()
    if not INT_RE.match(text):
        return 0
    return int(text)

def to_float(text):
    text = text.strip()
    if not DOUBLE_RE.match(text):
        return 0.0
    return float(text)

def to_bytes(text):
    try:
        return base64.b64decode("".join(text.split()), validate=True)
    except (binascii.Error, ValueError):
        return b""

class Decoder(object):
    """Decodes methodResponse documents.

    :param allow_none: decode <nil/> to None instead of treating it as text
    """
    def __init__(self, allow_none=False):
        self.allow_none = allow_none

    def decode(self, body):
        """Decode a response body into a Response.

        :param body: raw response body, bytes (str is encoded as UTF-8)
        :raises MalformedDocumentError: if the body is not XML
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        if not body or not body.strip():
            raise MalformedDocumentError("Empty response body")
        try:
            # lxml parsers are not thread safe, so each decode gets its own
            parser = etree.XMLParser(resolve_entities=False, no_network=True)
            root = etree.fromstring(body, parser)
        except etree.XMLSyntaxError as e:
            raise MalformedDocumentError(str(e))

        fault = first_child_element(root, "fault")
        if fault is not None:
            return Response(self.decode_value(first_child_element(fault)), is_fault=True)
        value = get_element_by_path(root, ("params", "param", "value"))
        return Response(self.decode_value(value))

    def decode_value(self, value):
        """Decode a <value> element. A missing element decodes to the empty string."""
        if value is None:
            return ""
        data = first_child_element(value)
        if data is None:
            # untyped value, the text is the string
            return element_text(value)

        tag = data.tag
        if tag == "struct":
            return self.decode_struct(data)
        elif tag == "array":
            return self.decode_array(data)
        elif tag == "i4" or tag == "int":
            return to_int(element_text(data))
        elif tag == "double":
            return to_float(element_text(data))
        elif tag == "dateTime.iso8601":
            return parse_timestamp(element_text(data))
        elif tag == "boolean":
            return element_text(data) == "1"
        elif tag == "base64":
            return to_bytes(element_text(data))
        elif tag == "nil" and self.allow_none:
            return None
        return element_text(data)

    def decode_struct(self, element):
        """Decode the members of a struct. When a name repeats the last member wins."""
        ret = {}
        for member in child_elements(element):
            if member.tag != "member": continue
            name, value = "", None
            for n in child_elements(member):
                if n.tag == "name":
                    name = element_text(n)
                elif n.tag == "value":
                    value = n
            ret[name] = self.decode_value(value)
        return ret

    def decode_array(self, element):
        data = first_child_element(element, "data")
        return [self.decode_value(n) for n in child_elements(data) if n.tag == "value"]

_decoder = Decoder()

def decode(body):
    """Decode a response body with the default decoder"""
    return _decoder.decode(body)
