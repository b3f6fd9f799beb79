from __future__ import annotations

# python imports:
import logging
import ssl
import trio # pip install trio
from typing import Optional as Opt, Type

# pop3_client imports:
import pop3_proto as proto
import pop3_async
from transport_trio import TrioTransport as Transport

logger = logging.getLogger ( __name__ )

class Client ( pop3_async.Client ):
	@classmethod
	async def connect ( cls: Type[Client],
		hostname: str,
		port: int,
		security: proto.Security = proto.Security.NONE,
		ssl_context: Opt[ssl.SSLContext] = None,
		timeout: Opt[float] = None,
	) -> Client:
		log = logger.getChild ( 'Client.connect' )
		tls = ( security == proto.Security.TLS )
		try:
			transport = await Transport.connect ( hostname, port, tls, ssl_context, timeout )
		except ( OSError, ValueError, trio.BrokenResourceError ) as e:
			raise proto.ConnectError ( f'unable to connect to {hostname}:{port}: {e!r}' ) from e
		self = cls ( transport, tls, hostname )
		step = 'greeting'
		try:
			await self.greeting()
			if security == proto.Security.STARTTLS:
				step = 'STLS'
				await self.stls()
		except proto.UpgradeFailed:
			await self.close()
			raise
		except proto.ErrorResponse as e:
			await self.close()
			if step == 'greeting':
				raise proto.GreetingRejected ( e.message ) from e
			raise proto.ConnectError ( f'{step} rejected: {e.message}' ) from e
		except ( proto.Closed, proto.ProtocolError ) as e:
			await self.close()
			raise proto.ConnectError ( f'{step} failed: {e!r}' ) from e
		log.debug ( f'connected to {hostname}:{port} with {security.name=}' )
		return self
	
	@classmethod
	def from_stream ( cls: Type[Client],
		stream: trio.abc.Stream,
		tls: bool,
		server_hostname: str,
	) -> Client:
		''' wrap an already connected stream, the caller reads the greeting '''
		return cls ( Transport ( stream ), tls, server_hostname )
