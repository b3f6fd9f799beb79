from __future__ import annotations

# python imports:
import logging
import socket
import ssl
from typing import Optional as Opt, Type

# pop3_client imports:
import pop3_proto as proto
import pop3_sync
from transport_socket import SocketTransport as Transport

logger = logging.getLogger ( __name__ )

class Client ( pop3_sync.Client ):
	@classmethod
	def connect ( cls: Type[Client],
		hostname: str,
		port: int,
		security: proto.Security = proto.Security.NONE,
		ssl_context: Opt[ssl.SSLContext] = None,
		timeout: Opt[float] = None,
	) -> Client:
		'''
		open a session: connect, read the greeting and, for Security.STARTTLS,
		upgrade the connection before returning
		
		nothing is returned (and the connection is closed) if any step fails
		'''
		log = logger.getChild ( 'Client.connect' )
		tls = ( security == proto.Security.TLS )
		try:
			transport = Transport.connect ( hostname, port, tls, ssl_context, timeout )
		except ( OSError, ValueError ) as e:
			raise proto.ConnectError ( f'unable to connect to {hostname}:{port}: {e!r}' ) from e
		self = cls ( transport, tls, hostname )
		step = 'greeting'
		try:
			self.greeting()
			if security == proto.Security.STARTTLS:
				step = 'STLS'
				self.stls()
		except proto.UpgradeFailed:
			self.close()
			raise
		except proto.ErrorResponse as e:
			self.close()
			if step == 'greeting':
				raise proto.GreetingRejected ( e.message ) from e
			raise proto.ConnectError ( f'{step} rejected: {e.message}' ) from e
		except ( proto.Closed, proto.ProtocolError ) as e:
			self.close()
			raise proto.ConnectError ( f'{step} failed: {e!r}' ) from e
		log.debug ( f'connected to {hostname}:{port} with {security.name=}' )
		return self
	
	@classmethod
	def from_socket ( cls: Type[Client],
		sock: socket.socket,
		tls: bool,
		server_hostname: str,
	) -> Client:
		''' wrap an already connected socket, the caller reads the greeting '''
		return cls ( Transport ( sock ), tls, server_hostname )
