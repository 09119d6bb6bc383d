"""
XML-RPC request encoder.

The document is built as text rather than through an XML library: strings
are escaped minimally (only & and <) and existing peers rely on that exact
form.
"""

import base64
import datetime

from async_xmlrpc.utils import format_timestamp

def escape(s):
    return s.replace("&", "&amp;").replace("<", "&lt;")

class Encoder(object):
    """Encodes method calls. Encoding never fails: values of an unknown type
    are sent as their str() form.
    """
    def encode(self, method_name, params):
        """Build the methodCall document.

        :param method_name: remote method name
        :param params: sequence of values, sent in order
        :return: the document as UTF-8 bytes
        """
        result = []
        result.append('<?xml version="1.0"?>\n')
        result.append("<methodCall>\n")
        result.append("  <methodName>%s</methodName>\n"%(escape(method_name)))
        result.append("  <params>\n")
        for value in params:
            result.append("    <param>\n")
            result.append("      <value>\n")
            result.append("        %s\n"%(self.encode_value(value)))
            result.append("      </value>\n")
            result.append("    </param>\n")
        result.append("  </params>\n")
        result.append("</methodCall>\n")
        return "".join(result).encode("utf-8")

    def encode_value(self, value):
        """Encode the contents of a <value> element"""
        if value is None:
            # Non-standard extension
            return "<nil></nil>"
        # bool is an int subclass, so it has to be checked first
        if isinstance(value, bool):
            return "<boolean>%s</boolean>"%("1" if value else "0")
        if isinstance(value, int):
            return "<int>%d</int>"%(value)
        if isinstance(value, float):
            return "<double>%r</double>"%(value)
        if isinstance(value, datetime.datetime):
            return "<dateTime.iso8601>%s</dateTime.iso8601>"%(format_timestamp(value))
        if isinstance(value, (bytes, bytearray)):
            return "<base64>%s</base64>"%(base64.b64encode(bytes(value)).decode("ascii"))
        if isinstance(value, dict):
            return self.encode_struct(value)
        if isinstance(value, (list, tuple)):
            return self.encode_array(value)
        return "<string>%s</string>"%(escape(str(value)))

    def encode_array(self, values):
        result = ["<array><data>\n"]
        for value in values:
            result.append("<value>%s</value>\n"%(self.encode_value(value)))
        result.append("</data></array>")
        return "".join(result)

    def encode_struct(self, members):
        result = ["<struct>\n"]
        for name, value in members.items():
            result.append("<member><name>%s</name><value>%s</value></member>\n"%(
                escape(str(name)), self.encode_value(value)))
        result.append("</struct>")
        return "".join(result)

_encoder = Encoder()

def encode(method_name, params=()):
    """Encode a method call with the default encoder"""
    return _encoder.encode(method_name, params)
