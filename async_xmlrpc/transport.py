"""
HTTP transports used by the client.

A transport posts one request body and returns a Deferred firing with
(status_code, body). Connection errors, TLS errors and timeouts travel down
the Deferred's errback chain as raised by the underlying library.
"""

import logging
import threading
from io import BytesIO

import requests
from twisted.internet import threads
from twisted.web.client import Agent, FileBodyProducer, readBody
from twisted.web.http_headers import Headers

logger = logging.getLogger(__name__)

class ITransport(object):
    """Interface for HTTP transports
    """
    def post(self, url, headers, body):
        """POST body to url.

        :param url: endpoint URL
        :param headers: dict of header name to value
        :param body: request body bytes
        :return: Deferred firing with (status_code, body bytes)
        """
        raise NotImplementedError()

def _to_bytes(s):
    return s if isinstance(s, bytes) else s.encode("utf-8")

class AgentTransport(ITransport):
    """Non blocking transport built on twisted.web.client.Agent"""
    def __init__(self, agent=None, reactor=None):
        if agent is None:
            if reactor is None:
                from twisted.internet import reactor
            agent = Agent(reactor)
        self.agent = agent

    def post(self, url, headers, body):
        raw_headers = Headers(dict((_to_bytes(k), [_to_bytes(v)]) for k, v in headers.items()))
        d = self.agent.request(b"POST", _to_bytes(url), raw_headers, FileBodyProducer(BytesIO(body)))
        d.addCallback(self._read_response)
        return d

    def _read_response(self, response):
        d = readBody(response)
        d.addCallback(lambda body: (response.code, body))
        return d

class RequestsTransport(ITransport):
    """Transport running a blocking requests session in the reactor's thread pool.

    requests.Session is not thread safe, so by default each pool thread
    creates and keeps its own session. A session passed in explicitly is
    shared by every thread and must only be used with a defer_fn that runs
    posts one at a time.

    :param session: requests.Session shared by all posts, None for one per thread
    :param timeout: seconds, passed through to requests
    :param defer_fn: runs the blocking post and returns a Deferred,
        threads.deferToThread by default
    :param session_factory: creates the per thread sessions
    """
    def __init__(self, session=None, timeout=None, defer_fn=None, session_factory=requests.Session):
        self.session = session
        self.timeout = timeout
        self._defer_fn = defer_fn if defer_fn is not None else threads.deferToThread
        self._session_factory = session_factory
        self._local = threading.local()

    def get_session(self):
        """The session for the calling thread"""
        if self.session is not None:
            return self.session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = self._session_factory()
        return session

    def post(self, url, headers, body):
        return self._defer_fn(self._post, url, headers, body)

    def _post(self, url, headers, body):
        response = self.get_session().post(url, data=body, headers=headers, timeout=self.timeout)
        return response.status_code, response.content
