"""
Asynchronous XML-RPC client for Twisted.

Encodes method calls into XML-RPC request documents, posts them over an
asynchronous HTTP transport and decodes the replies, telling normal return
values apart from faults.
"""

from async_xmlrpc.codec import XMLRPCError, MalformedDocumentError, Fault, Response
from async_xmlrpc.codec.encoder import Encoder, encode
from async_xmlrpc.codec.decoder import Decoder, decode
from async_xmlrpc.client import XMLRPCClient, ClientListener
from async_xmlrpc.transport import ITransport, AgentTransport, RequestsTransport
