"""
XML-RPC client

Issues method calls against an endpoint over an asynchronous transport and
routes each decoded reply to the registered listeners, the optional per-call
callback, and the returned Deferred. It also contains the xmlrpc_call CLI.
"""
import sys
import getopt
import itertools
import logging
import logging.config

from async_xmlrpc.codec import Fault
from async_xmlrpc.codec.encoder import Encoder
from async_xmlrpc.codec.decoder import Decoder
from async_xmlrpc.transport import AgentTransport

logger = logging.getLogger(__name__)

USER_AGENT = "async-xmlrpc/0.1"

_client_ids = itertools.count(1)

class ClientListener(object):
    """Receives client notifications. Override the methods of interest.
    """
    def notify_response_received(self, value):
        pass
    def notify_fault_received(self, fault):
        pass
    def notify_endpoint_changed(self, endpoint):
        pass

class XMLRPCClient(object):
    """Initialise the client.

    :param endpoint: the server URL, HTTP and HTTPS only. May be set later.
    :param transport: ITransport implementation, AgentTransport by default
    :param debug: log request and response bodies
    :param allow_none: decode <nil/> to None

    >>> c = XMLRPCClient("ssh://")
    Traceback (most recent call last):
    ...
    ValueError: Invalid server URL specified
    >>> c = XMLRPCClient("http://localhost:8080", transport=object())
    """
    def __init__(self, endpoint=None, transport=None, debug=False, allow_none=False):
        self.client_id = next(_client_ids)
        self.debug = debug
        self.transport = transport if transport is not None else AgentTransport()
        self.encoder = Encoder()
        self.decoder = Decoder(allow_none=allow_none)
        self.listeners = []
        self._endpoint = None
        if endpoint is not None:
            self._endpoint = self._validate_endpoint(endpoint)
        if self.debug:
            logger.debug("%s Constructed", self.log_prefix)

    @property
    def log_prefix(self):
        return "XMLRPCClient[%d]"%(self.client_id)

    @property
    def endpoint(self):
        return self._endpoint

    @endpoint.setter
    def endpoint(self, value):
        self.set_endpoint(value)

    def set_endpoint(self, url):
        """Change the target URL for subsequent calls and notify the listeners.
        Calls already issued keep the endpoint they were made with.
        """
        self._endpoint = self._validate_endpoint(url)
        for listener in list(self.listeners):
            listener.notify_endpoint_changed(self._endpoint)

    def _validate_endpoint(self, url):
        if not url.startswith("http://") and not url.startswith("https://"):
            raise ValueError("Invalid server URL specified")
        return url

    def register_listener(self, listener):
        self.listeners.append(listener)

    def unregister_listener(self, listener):
        self.listeners.remove(listener)

    def call(self, method_name, params=(), callback=None):
        """Call a remote method. Returns immediately.

        Once the reply is decoded, faults go to notify_fault_received and
        return values to notify_response_received on every listener. The
        callback, if given, then receives the raw decoded value either way;
        use Fault.is_fault to tell them apart. A listener that raises is
        logged and skipped, it does not stop delivery to the others or to
        the callback.

        :param method_name: remote method name
        :param params: sequence of parameter values
        :param callback: optional callable taking the decoded value
        :return: Deferred firing with the decoded value. Malformed replies
            errback with MalformedDocumentError, transport failures with the
            transport's own error.
        """
        endpoint = self._endpoint
        if endpoint is None:
            raise ValueError("No endpoint set")
        body = self.encoder.encode(method_name, params)
        headers = {
            "Connection": "close",
            "Content-Type": "text/xml",
            "User-Agent": USER_AGENT,
        }
        logger.info("%s Calling %s::%s", self.log_prefix, endpoint, method_name)
        if self.debug:
            logger.debug("%s Sending XMLRpc query %s", self.log_prefix, body.decode("utf-8"))
        d = self.transport.post(endpoint, headers, body)
        d.addCallback(self._reply_received)
        d.addCallback(self._dispatch, callback)
        return d

    def _reply_received(self, reply):
        status, body = reply
        logger.info("%s Response status=%s", self.log_prefix, status)
        if self.debug:
            logger.debug("%s Received XMLRpc response %r", self.log_prefix, body)
        response = self.decoder.decode(body)
        if response.is_fault:
            fault = response.fault
            logger.info("%s XMLRpc fault: code = %s", self.log_prefix, fault.code)
            logger.info("%s XMLRpc fault: string = %s", self.log_prefix, fault.message)
        return response

    def _dispatch(self, response, callback):
        for listener in list(self.listeners):
            try:
                if response.is_fault:
                    listener.notify_fault_received(response.fault)
                else:
                    listener.notify_response_received(response.value)
            except Exception:
                logger.exception("%s Error in listener %r", self.log_prefix, listener)
        if callback is not None:
            callback(response.value)
        return response.value

def parse_param(arg):
    """Command line parameters are sent as int or float where they parse, otherwise as strings"""
    for kind in (int, float):
        try:
            return kind(arg)
        except ValueError:
            pass
    return arg

def run_call(reactor, client, method_name, params):
    def print_result(value):
        if Fault.is_fault(value):
            fault = Fault(value)
            print("Fault %s: %s"%(fault.code, fault.message))
            raise SystemExit(1)
        print(repr(value))
    d = client.call(method_name, params)
    d.addCallback(print_result)
    return d

def main():
    """Main entry point. Exposed as a function so that it is compatible with the egg script process"""
    from twisted.internet import task
    from twisted.python import log

    opts, args = getopt.getopt(sys.argv[1:], "s:l:d")
    server_url = None
    logging_conf = None
    debug = False
    for k,v in opts:
        if k == "-s":
            server_url = v
        elif k == "-l":
            logging_conf = v
        elif k == "-d":
            debug = True

    errors = []
    if server_url == None:
        errors.append("No server URL set")
    if len(args) == 0:
        errors.append("No method name given")

    if len(errors) > 0:
        print("\n".join(errors))
        print("Usage: xmlrpc_call -s <url> [-l <logging.conf>] [-d] <method> [param ...]")
        sys.exit(1)

    if logging_conf is not None:
        logging.config.fileConfig(logging_conf)
    else:
        logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING)
    observer = log.PythonLoggingObserver()
    observer.start()

    client = XMLRPCClient(server_url, debug=debug)
    task.react(run_call, (client, args[0], [parse_param(a) for a in args[1:]]))

if __name__ == "__main__":
    main()
