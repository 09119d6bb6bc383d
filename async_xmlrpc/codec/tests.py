"""This module tests the XML-RPC encoder and decoder
"""
import unittest
import threading
import datetime

from lxml import etree

from async_xmlrpc.codec import Fault, Response, MalformedDocumentError
from async_xmlrpc.codec.encoder import Encoder, encode
from async_xmlrpc.codec.decoder import Decoder, decode
from async_xmlrpc.utils import parse_timestamp, format_timestamp, UTC

FAULT_RESPONSE = b"""<?xml version="1.0"?>
<methodResponse>
  <fault>
    <value><struct>
      <member><name>faultCode</name><value><int>4</int></value></member>
      <member><name>faultString</name><value><string>Too many parameters.</string></value></member>
    </struct></value>
  </fault>
</methodResponse>
"""

def wrap_as_response(encoded_value):
    """Place an encoded value where a server would put its return value"""
    return ("""<?xml version="1.0"?>
<methodResponse><params><param><value>%s</value></param></params></methodResponse>
"""%(encoded_value)).encode("utf-8")

class TestEncoder(unittest.TestCase):
    def setUp(self):
        self.encoder = Encoder()

    def test_method_call(self):
        doc = etree.fromstring(encode("examples.getStateName", [41]))
        self.assertEqual("methodCall", doc.tag)
        self.assertEqual("examples.getStateName", doc.findtext("methodName"))
        params = doc.findall("params/param")
        self.assertEqual(1, len(params))
        value = params[0].find("value")
        self.assertEqual(["int"], [e.tag for e in value])
        self.assertEqual("41", value.findtext("int"))

    def test_declaration(self):
        self.assertTrue(encode("ping").startswith(b'<?xml version="1.0"?>\n<methodCall>'))

    def test_no_params(self):
        doc = etree.fromstring(encode("ping", []))
        self.assertEqual(0, len(doc.findall("params/param")))

    def test_params_in_order(self):
        doc = etree.fromstring(encode("m", [1, "two", 3.0]))
        tags = [p.find("value")[0].tag for p in doc.findall("params/param")]
        self.assertEqual(["int", "string", "double"], tags)

    def test_escaping(self):
        self.assertEqual("<string>a &amp; b &lt; c</string>", self.encoder.encode_value("a & b < c"))
        self.assertEqual("<string>x > \"y\" 'z'</string>", self.encoder.encode_value("x > \"y\" 'z'"))

    def test_scalars(self):
        self.assertEqual("<int>-7</int>", self.encoder.encode_value(-7))
        self.assertEqual("<int>4294967296</int>", self.encoder.encode_value(2**32))
        self.assertEqual("<double>1.5</double>", self.encoder.encode_value(1.5))
        self.assertEqual("<boolean>1</boolean>", self.encoder.encode_value(True))
        self.assertEqual("<boolean>0</boolean>", self.encoder.encode_value(False))
        self.assertEqual("<nil></nil>", self.encoder.encode_value(None))

    def test_timestamp(self):
        self.assertEqual("<dateTime.iso8601>19980717T14:08:55</dateTime.iso8601>",
                         self.encoder.encode_value(datetime.datetime(1998, 7, 17, 14, 8, 55)))
        # the offset is not sent, only the wall clock time
        aware = datetime.datetime(1998, 7, 17, 14, 8, 55, 123, tzinfo=UTC)
        self.assertEqual("<dateTime.iso8601>19980717T14:08:55</dateTime.iso8601>",
                         self.encoder.encode_value(aware))

    def test_base64(self):
        payload = b"\x00\xff" * 100
        encoded = self.encoder.encode_value(payload)
        self.assertTrue(encoded.startswith("<base64>AP8A/w"))
        self.assertNotIn("\n", encoded)
        self.assertEqual(encoded, self.encoder.encode_value(bytearray(payload)))

    def test_fallback_to_string(self):
        self.assertEqual("<string>2012-10-03</string>", self.encoder.encode_value(datetime.date(2012, 10, 3)))
        self.assertEqual("<string>{1}</string>", self.encoder.encode_value(set([1])))

    def test_nested(self):
        encoded = self.encoder.encode_value([1, {"x": True}])
        array = etree.fromstring(encoded)
        self.assertEqual("array", array.tag)
        values = array.findall("data/value")
        self.assertEqual(2, len(values))
        self.assertEqual("1", values[0].findtext("int"))
        members = values[1].findall("struct/member")
        self.assertEqual(1, len(members))
        self.assertEqual("x", members[0].findtext("name"))
        self.assertEqual("1", members[0].findtext("value/boolean"))

    def test_struct_order(self):
        struct = etree.fromstring(self.encoder.encode_value({"b": 1, "a": 2, "c": 3}))
        self.assertEqual(["b", "a", "c"], [m.findtext("name") for m in struct.findall("member")])

    def test_tuple_is_array(self):
        self.assertEqual(self.encoder.encode_value([1, 2]), self.encoder.encode_value((1, 2)))

class TestDecoder(unittest.TestCase):
    def setUp(self):
        self.decoder = Decoder()

    def test_fault(self):
        response = decode(FAULT_RESPONSE)
        self.assertTrue(response.is_fault)
        self.assertEqual(4, response.fault.code)
        self.assertEqual("Too many parameters.", response.fault.message)
        self.assertTrue(Fault.is_fault(response.value))

    def test_success(self):
        response = decode(wrap_as_response("<string>South Dakota</string>"))
        self.assertFalse(response.is_fault)
        self.assertEqual(None, response.fault)
        self.assertEqual("South Dakota", response.value)

    def test_success_looking_like_fault(self):
        # only the <fault> element makes a fault, a returned struct is a value
        response = decode(wrap_as_response(
            "<struct><member><name>faultCode</name><value><int>1</int></value></member></struct>"))
        self.assertFalse(response.is_fault)
        self.assertTrue(Fault.is_fault(response.value))

    def test_empty_body(self):
        self.assertRaises(MalformedDocumentError, decode, b"")
        self.assertRaises(MalformedDocumentError, decode, b"  \n")

    def test_not_xml(self):
        self.assertRaises(MalformedDocumentError, decode, b"<html><body>502 Bad Gateway")
        self.assertRaises(MalformedDocumentError, decode, b"Internal Server Error")

    def test_str_body(self):
        self.assertEqual(7, decode(wrap_as_response("<i4>7</i4>").decode("utf-8")).value)

    def test_idempotent(self):
        self.assertEqual(decode(FAULT_RESPONSE), decode(FAULT_RESPONSE))
        body = wrap_as_response("<array><data><value><int>1</int></value></data></array>")
        self.assertEqual(decode(body), decode(body))

    def test_scalars(self):
        def value(encoded):
            return decode(wrap_as_response(encoded)).value
        self.assertEqual(12, value("<i4>12</i4>"))
        self.assertEqual(-3, value("<int> -3 </int>"))
        self.assertEqual(2.5, value("<double>2.5</double>"))
        self.assertIs(True, value("<boolean>1</boolean>"))
        self.assertIs(False, value("<boolean>0</boolean>"))
        self.assertIs(False, value("<boolean>true</boolean>"))
        self.assertEqual("plain", value("<string>plain</string>"))
        self.assertEqual("untyped", value("untyped"))
        self.assertEqual(b"hello", value("<base64>aGVs\nbG8=</base64>"))
        self.assertEqual(datetime.datetime(1998, 7, 17, 14, 8, 55),
                         value("<dateTime.iso8601>19980717T14:08:55</dateTime.iso8601>"))

    def test_entities(self):
        self.assertEqual("a & b < c > d", decode(wrap_as_response("<string>a &amp; b &lt; c &gt; d</string>")).value)

    def test_comments_are_skipped(self):
        self.assertEqual(5, decode(wrap_as_response("<!-- note --><int>5</int>")).value)

    def test_nil(self):
        body = wrap_as_response("<nil/>")
        self.assertEqual("", decode(body).value)
        self.assertEqual(None, Decoder(allow_none=True).decode(body).value)

    def test_nested(self):
        body = wrap_as_response("""<struct>
            <member><name>list</name><value><array><data>
                <value><int>1</int></value>
                <value><struct><member><name>x</name><value><boolean>1</boolean></value></member></struct></value>
                <value>text</value>
            </data></array></value></member>
            <member><name>empty</name><value><array><data></data></array></value></member>
        </struct>""")
        self.assertEqual({"list": [1, {"x": True}, "text"], "empty": []}, decode(body).value)

class TestConcurrentDecoding(unittest.TestCase):
    def test_threads(self):
        bodies = [wrap_as_response(Encoder().encode_value({"n": i, "items": list(range(i))})) for i in range(20)]
        results = {}
        def worker(i):
            for _ in range(50):
                results.setdefault(i, []).append(decode(bodies[i]).value)
        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for t in threads: t.start()
        for t in threads: t.join()
        for i in range(20):
            self.assertEqual(50, len(results[i]))
            for value in results[i]:
                self.assertEqual({"n": i, "items": list(range(i))}, value)

class TestTolerantDecoding(unittest.TestCase):
    """Garbage in, default out: odd but parseable documents decode to empty or
    zero values instead of raising."""

    def value(self, encoded):
        return decode(wrap_as_response(encoded)).value

    def test_bad_numbers(self):
        self.assertEqual(0, self.value("<int>twelve</int>"))
        self.assertEqual(0, self.value("<i4></i4>"))
        self.assertEqual(0.0, self.value("<double>n/a</double>"))

    def test_non_xmlrpc_numbers(self):
        for text in ["1_000", "\uff11\uff12", "0x10", "1e3", "1.0"]:
            self.assertEqual(0, self.value("<int>%s</int>"%(text)))
        for text in ["inf", "nan", "-Infinity", "1_0.5", "\uff11.5", "1.5.2"]:
            self.assertEqual(0.0, self.value("<double>%s</double>"%(text)))
        self.assertEqual(-12, self.value("<i4>-12</i4>"))
        self.assertEqual(12, self.value("<int>+12</int>"))
        self.assertEqual(0.5, self.value("<double>.5</double>"))
        self.assertEqual(-2.0, self.value("<double>-2.</double>"))
        self.assertEqual(1.5e-7, self.value("<double>1.5E-7</double>"))

    def test_bad_timestamp(self):
        self.assertEqual(None, self.value("<dateTime.iso8601>yesterday</dateTime.iso8601>"))

    def test_bad_base64(self):
        self.assertEqual(b"", self.value("<base64>!!!</base64>"))

    def test_missing_params(self):
        self.assertEqual(Response(""), decode(b"<methodResponse/>"))
        self.assertEqual(Response(""), decode(b"<methodResponse><params/></methodResponse>"))
        self.assertEqual(Response(""), decode(b"<methodResponse><params><param/></params></methodResponse>"))

    def test_unexpected_root(self):
        self.assertEqual(Response(""), decode(b"<html><body>Not found</body></html>"))

    def test_incomplete_members(self):
        body = wrap_as_response("""<struct>
            <member><value><int>1</int></value></member>
            <member><name>novalue</name></member>
            <note>ignored</note>
        </struct>""")
        self.assertEqual({"": 1, "novalue": ""}, decode(body).value)

    def test_array_without_data(self):
        self.assertEqual([], self.value("<array/>"))

    def test_incomplete_fault(self):
        response = decode(b"<methodResponse><fault><value><struct/></value></fault></methodResponse>")
        self.assertTrue(response.is_fault)
        self.assertEqual(0, response.fault.code)
        self.assertEqual("", response.fault.message)

    def test_empty_fault(self):
        response = decode(b"<methodResponse><fault/></methodResponse>")
        self.assertTrue(response.is_fault)
        self.assertEqual("", response.value)
        self.assertEqual(0, response.fault.code)

class TestDuplicateMembers(unittest.TestCase):
    """When a struct repeats a member name, the last one wins."""

    def test_last_wins(self):
        body = wrap_as_response("""<struct>
            <member><name>k</name><value><int>1</int></value></member>
            <member><name>k</name><value><int>2</int></value></member>
        </struct>""")
        self.assertEqual({"k": 2}, decode(body).value)

    def test_first_is_discarded(self):
        body = wrap_as_response("""<struct>
            <member><name>k</name><value><string>first</string></value></member>
            <member><name>other</name><value><int>0</int></value></member>
            <member><name>k</name><value><int>2</int></value></member>
        </struct>""")
        value = decode(body).value
        self.assertNotEqual("first", value["k"])
        self.assertEqual(2, len(value))

class TestRoundTrip(unittest.TestCase):
    def check(self, value):
        self.assertEqual(value, decode(wrap_as_response(Encoder().encode_value(value))).value)

    def test_values(self):
        for value in [0, -2**31, 2**31 - 1, 0.1, -1e-300, True, False, "", "plain",
                      "a & b < c > d", u"unicodé", b"", b"\x00binary\xff",
                      datetime.datetime(2012, 10, 3, 9, 30, 1), [], {},
                      [1, [2, [3]], {"x": {"y": [True, "z"]}}]]:
            self.check(value)

    def test_carriage_returns_are_normalised(self):
        # XML end of line handling turns \r\n and lone \r into \n, and
        # strings are not escaped beyond & and <
        encoded = Encoder().encode_value("a\r\nb\rc")
        self.assertEqual("a\nb\nc", decode(wrap_as_response(encoded)).value)

class TestTimestamps(unittest.TestCase):
    def test_format(self):
        self.assertEqual("00010102T03:04:05", format_timestamp(datetime.datetime(1, 1, 2, 3, 4, 5)))

    def test_parse(self):
        expected = datetime.datetime(1998, 7, 17, 14, 8, 55)
        self.assertEqual(expected, parse_timestamp("19980717T14:08:55"))
        self.assertEqual(expected, parse_timestamp(" 1998-07-17T14:08:55 "))
        self.assertEqual(expected, parse_timestamp("19980717T140855"))
        self.assertEqual(expected.replace(microsecond=500000), parse_timestamp("19980717T14:08:55.5"))

    def test_parse_offset(self):
        parsed = parse_timestamp("19980717T14:08:55Z")
        self.assertEqual(datetime.timedelta(0), parsed.utcoffset())
        parsed = parse_timestamp("1998-07-17T14:08:55-05:30")
        self.assertEqual(datetime.timedelta(hours=-5, minutes=-30), parsed.utcoffset())

    def test_parse_invalid(self):
        self.assertEqual(None, parse_timestamp(""))
        self.assertEqual(None, parse_timestamp("19981317T14:08:55"))
        self.assertEqual(None, parse_timestamp("19980717T14:08:55.x"))

if __name__ == "__main__":
    unittest.main()
