"""
This module tests the client call lifecycle and the transports, using in
memory transports, agents and sessions in place of the network.
"""
import logging
import threading

from lxml import etree
from twisted.internet import defer
from twisted.python.failure import Failure
from twisted.trial.unittest import SynchronousTestCase
from twisted.web.client import ResponseDone

from async_xmlrpc.client import XMLRPCClient, ClientListener, USER_AGENT, parse_param
from async_xmlrpc.codec import Fault, MalformedDocumentError
from async_xmlrpc.transport import AgentTransport, RequestsTransport

FAULT_RESPONSE = b"""<?xml version="1.0"?>
<methodResponse><fault><value><struct>
  <member><name>faultCode</name><value><int>4</int></value></member>
  <member><name>faultString</name><value><string>Too many parameters.</string></value></member>
</struct></value></fault></methodResponse>
"""

STATE_RESPONSE = b"""<?xml version="1.0"?>
<methodResponse><params><param><value><string>South Dakota</string></value></param></params></methodResponse>
"""

class MockTransport(object):
    """Records posts and leaves their Deferreds for the test to fire"""
    def __init__(self):
        self.posts = []

    def post(self, url, headers, body):
        d = defer.Deferred()
        self.posts.append((url, headers, body, d))
        return d

    def reply(self, index, body, status=200):
        self.posts[index][3].callback((status, body))

class RecordingListener(ClientListener):
    def __init__(self):
        self.responses = []
        self.faults = []
        self.endpoints = []

    def notify_response_received(self, value):
        self.responses.append(value)

    def notify_fault_received(self, fault):
        self.faults.append(fault)

    def notify_endpoint_changed(self, endpoint):
        self.endpoints.append(endpoint)

class TestClient(SynchronousTestCase):
    def setUp(self):
        self.transport = MockTransport()
        self.client = XMLRPCClient("http://localhost:8080/RPC2", transport=self.transport)
        self.listener = RecordingListener()
        self.client.register_listener(self.listener)

    def test_invalid_endpoint(self):
        self.assertRaises(ValueError, XMLRPCClient, "", transport=self.transport)
        self.assertRaises(ValueError, XMLRPCClient, "ssh://host", transport=self.transport)
        self.assertRaises(ValueError, self.client.set_endpoint, "ftp://host")
        self.assertEqual("http://localhost:8080/RPC2", self.client.endpoint)
        self.assertEqual([], self.listener.endpoints)

    def test_no_endpoint(self):
        client = XMLRPCClient(transport=self.transport)
        self.assertRaises(ValueError, client.call, "ping")
        self.assertEqual([], self.transport.posts)

    def test_request(self):
        d = self.client.call("examples.getStateName", [41])
        self.assertNoResult(d)
        self.assertEqual(1, len(self.transport.posts))
        url, headers, body, _ = self.transport.posts[0]
        self.assertEqual("http://localhost:8080/RPC2", url)
        self.assertEqual({"Connection": "close", "Content-Type": "text/xml", "User-Agent": USER_AGENT}, headers)
        doc = etree.fromstring(body)
        self.assertEqual("examples.getStateName", doc.findtext("methodName"))
        self.assertEqual("41", doc.findtext("params/param/value/int"))

    def test_success(self):
        values = []
        d = self.client.call("examples.getStateName", [41], values.append)
        self.transport.reply(0, STATE_RESPONSE)
        self.assertEqual("South Dakota", self.successResultOf(d))
        self.assertEqual(["South Dakota"], values)
        self.assertEqual(["South Dakota"], self.listener.responses)
        self.assertEqual([], self.listener.faults)

    def test_fault(self):
        values = []
        d = self.client.call("examples.getStateName", [41, 42], values.append)
        self.transport.reply(0, FAULT_RESPONSE, status=200)
        value = self.successResultOf(d)
        self.assertEqual([], self.listener.responses)
        self.assertEqual(1, len(self.listener.faults))
        fault = self.listener.faults[0]
        self.assertEqual(4, fault.code)
        self.assertEqual("Too many parameters.", fault.message)
        # the raw callback gets the fault struct as a plain value
        self.assertEqual([value], values)
        self.assertTrue(Fault.is_fault(values[0]))

    def test_malformed_reply(self):
        values = []
        d = self.client.call("ping", [], values.append)
        self.transport.reply(0, b"", status=502)
        self.failureResultOf(d, MalformedDocumentError)
        self.assertEqual([], values)
        self.assertEqual([], self.listener.responses)
        self.assertEqual([], self.listener.faults)

    def test_transport_failure(self):
        values = []
        d = self.client.call("ping", [], values.append)
        self.transport.posts[0][3].errback(ConnectionRefusedError())
        self.failureResultOf(d, ConnectionRefusedError)
        self.assertEqual([], values)
        self.assertEqual([], self.listener.responses)

    def test_concurrent_calls(self):
        results = []
        d1 = self.client.call("first", [], results.append)
        d2 = self.client.call("second", [], results.append)
        self.assertEqual(2, len(self.transport.posts))
        # completion follows the order the transport delivers in
        self.transport.reply(1, STATE_RESPONSE)
        self.assertNoResult(d1)
        self.transport.reply(0, FAULT_RESPONSE)
        self.assertEqual("South Dakota", self.successResultOf(d2))
        self.assertTrue(Fault.is_fault(self.successResultOf(d1)))
        self.assertEqual("South Dakota", results[0])
        self.assertTrue(Fault.is_fault(results[1]))

    def test_endpoint_captured_at_call(self):
        self.client.call("ping")
        self.client.set_endpoint("https://example.com/xmlrpc")
        self.client.call("ping")
        self.assertEqual(["http://localhost:8080/RPC2", "https://example.com/xmlrpc"],
                         [p[0] for p in self.transport.posts])
        self.assertEqual(["https://example.com/xmlrpc"], self.listener.endpoints)

    def test_endpoint_property(self):
        self.client.endpoint = "http://other:9000/"
        self.assertEqual("http://other:9000/", self.client.endpoint)
        self.assertEqual(["http://other:9000/"], self.listener.endpoints)

    def test_failing_listener(self):
        class BrokenListener(ClientListener):
            def notify_response_received(self, value):
                raise RuntimeError("listener failed")
        self.client.listeners.insert(0, BrokenListener())
        values = []
        with self.assertLogs("async_xmlrpc.client", level=logging.ERROR) as logs:
            d = self.client.call("examples.getStateName", [41], values.append)
            self.transport.reply(0, STATE_RESPONSE)
        # the other listeners and the callback still get the reply
        self.assertEqual("South Dakota", self.successResultOf(d))
        self.assertEqual(["South Dakota"], values)
        self.assertEqual(["South Dakota"], self.listener.responses)
        self.assertIs(RuntimeError, logs.records[0].exc_info[0])

    def test_unregister_listener(self):
        self.client.unregister_listener(self.listener)
        d = self.client.call("ping")
        self.transport.reply(0, STATE_RESPONSE)
        self.successResultOf(d)
        self.assertEqual([], self.listener.responses)

    def test_client_ids(self):
        other = XMLRPCClient(transport=self.transport)
        self.assertNotEqual(self.client.client_id, other.client_id)
        self.assertEqual("XMLRPCClient[%d]"%(other.client_id), other.log_prefix)

    def test_debug_logging(self):
        self.client.debug = True
        with self.assertLogs("async_xmlrpc.client", level=logging.DEBUG) as logs:
            d = self.client.call("examples.getStateName", [41])
            self.transport.reply(0, STATE_RESPONSE)
            self.successResultOf(d)
        output = "\n".join(logs.output)
        self.assertIn("Calling http://localhost:8080/RPC2::examples.getStateName", output)
        self.assertIn("<int>41</int>", output)
        self.assertIn("Response status=200", output)
        self.assertIn("South Dakota", output)

    def test_fault_logging(self):
        with self.assertLogs("async_xmlrpc.client", level=logging.INFO) as logs:
            self.client.call("m")
            self.transport.reply(0, FAULT_RESPONSE)
        output = "\n".join(logs.output)
        self.assertIn("code = 4", output)
        self.assertIn("string = Too many parameters.", output)
        self.assertNotIn("Sending", output)

    def test_allow_none(self):
        client = XMLRPCClient("http://localhost/", transport=self.transport, allow_none=True)
        d = client.call("m", [None])
        self.assertIn(b"<nil></nil>", self.transport.posts[0][2])
        self.transport.reply(0, b"<methodResponse><params><param><value><nil/></value></param></params></methodResponse>")
        self.assertEqual(None, self.successResultOf(d))

class TestParseParam(SynchronousTestCase):
    def test_parse(self):
        self.assertEqual(41, parse_param("41"))
        self.assertEqual(1.5, parse_param("1.5"))
        self.assertEqual("Dakota", parse_param("Dakota"))

class MockResponse(object):
    def __init__(self, code, body):
        self.code = code
        self.phrase = b"OK"
        self.body = body

    def deliverBody(self, protocol):
        protocol.dataReceived(self.body)
        protocol.connectionLost(Failure(ResponseDone()))

class MockAgent(object):
    def __init__(self, result):
        self.result = result
        self.requests = []

    def request(self, method, uri, headers=None, bodyProducer=None):
        self.requests.append((method, uri, headers, bodyProducer))
        if isinstance(self.result, Exception):
            return defer.fail(self.result)
        return defer.succeed(self.result)

class TestAgentTransport(SynchronousTestCase):
    def test_post(self):
        agent = MockAgent(MockResponse(200, STATE_RESPONSE))
        transport = AgentTransport(agent=agent)
        d = transport.post("http://localhost:8080/RPC2", {"Content-Type": "text/xml"}, b"<methodCall/>")
        self.assertEqual((200, STATE_RESPONSE), self.successResultOf(d))
        method, uri, headers, producer = agent.requests[0]
        self.assertEqual(b"POST", method)
        self.assertEqual(b"http://localhost:8080/RPC2", uri)
        self.assertEqual([b"text/xml"], headers.getRawHeaders(b"Content-Type"))
        self.assertEqual(len(b"<methodCall/>"), producer.length)

    def test_failure(self):
        transport = AgentTransport(agent=MockAgent(ConnectionRefusedError()))
        d = transport.post("http://localhost:1/", {}, b"")
        self.failureResultOf(d, ConnectionRefusedError)

    def test_client_over_agent(self):
        agent = MockAgent(MockResponse(200, FAULT_RESPONSE))
        client = XMLRPCClient("http://localhost:8080/RPC2", transport=AgentTransport(agent=agent))
        listener = RecordingListener()
        client.register_listener(listener)
        self.successResultOf(client.call("m", [1, 2]))
        self.assertEqual(4, listener.faults[0].code)
        headers = agent.requests[0][2]
        self.assertEqual([USER_AGENT.encode("ascii")], headers.getRawHeaders(b"User-Agent"))

class MockRequestsResponse(object):
    def __init__(self, status_code, content):
        self.status_code = status_code
        self.content = content

class MockSession(object):
    def __init__(self, response):
        self.response = response
        self.posts = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append((url, data, headers, timeout))
        return self.response

class TestRequestsTransport(SynchronousTestCase):
    def test_post(self):
        session = MockSession(MockRequestsResponse(500, FAULT_RESPONSE))
        transport = RequestsTransport(session=session, timeout=5, defer_fn=defer.maybeDeferred)
        d = transport.post("http://localhost/", {"Connection": "close"}, b"body")
        self.assertEqual((500, FAULT_RESPONSE), self.successResultOf(d))
        self.assertEqual([("http://localhost/", b"body", {"Connection": "close"}, 5)], session.posts)

    def test_error(self):
        class BrokenSession(object):
            def post(self, *args, **kwargs):
                raise IOError("connection reset")
        transport = RequestsTransport(session=BrokenSession(), defer_fn=defer.maybeDeferred)
        self.failureResultOf(transport.post("http://localhost/", {}, b""), IOError)

    def test_session_per_thread(self):
        created = []
        def factory():
            session = MockSession(MockRequestsResponse(200, STATE_RESPONSE))
            created.append(session)
            return session
        transport = RequestsTransport(session_factory=factory, defer_fn=defer.maybeDeferred)
        self.successResultOf(transport.post("http://localhost/", {}, b"1"))
        self.successResultOf(transport.post("http://localhost/", {}, b"2"))
        self.assertEqual(1, len(created))
        self.assertEqual(2, len(created[0].posts))

        sessions = []
        thread = threading.Thread(target=lambda: sessions.append(transport.get_session()))
        thread.start()
        thread.join()
        self.assertEqual(2, len(created))
        self.assertIs(created[1], sessions[0])
        self.assertIsNot(created[0], sessions[0])
