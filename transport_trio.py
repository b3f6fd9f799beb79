from __future__ import annotations

# python imports:
import logging
import math
import ssl
import trio # pip install trio
from typing import Optional as Opt, Type

# pop3_client imports:
from transport import AsyncTransport
from util import BYTES

logger = logging.getLogger ( __name__ )


class TrioTransport ( AsyncTransport ):
	happy_eyeballs_delay: float = 0.25 # this is the same as trio's default circa version 0.16.0
	timeout: float = math.inf # seconds allowed for each read or write
	stream: trio.abc.Stream
	
	def __init__ ( self, stream: trio.abc.Stream ) -> None:
		self.stream = stream
	
	@classmethod
	async def connect ( cls: Type[TrioTransport],
		hostname: str,
		port: int,
		tls: bool,
		ssl_context: Opt[ssl.SSLContext] = None,
		timeout: Opt[float] = None,
	) -> TrioTransport:
		#log = logger.getChild ( 'TrioTransport.connect' )
		stream: Opt[trio.abc.Stream] = None
		with trio.move_on_after ( math.inf if timeout is None else timeout ):
			stream = await trio.open_tcp_stream ( hostname, port,
				happy_eyeballs_delay = cls.happy_eyeballs_delay,
			)
		if stream is None:
			raise TimeoutError ( f'{cls.__module__}.{cls.__name__} timeout connecting to {hostname=} {port=}' )
		self = cls ( stream )
		self.ssl_context = ssl_context
		if timeout is not None:
			self.timeout = timeout
		if tls:
			try:
				await self.starttls_client ( hostname )
			except Exception:
				await self.close()
				raise
		return self
	
	async def read ( self ) -> bytes:
		#log = logger.getChild ( 'TrioTransport.read' )
		with trio.move_on_after ( self.timeout ):
			try:
				return await self.stream.receive_some()
			except trio.BrokenResourceError as e:
				raise ConnectionResetError ( f'{type(self).__module__}.{type(self).__name__} stream broken: {e!r}' ) from e
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout waiting to read data' )
	
	async def write ( self, data: BYTES ) -> None:
		#log = logger.getChild ( 'TrioTransport.write' )
		with trio.move_on_after ( self.timeout ):
			try:
				await self.stream.send_all ( data )
			except trio.BrokenResourceError as e:
				raise BrokenPipeError ( f'{type(self).__module__}.{type(self).__name__} stream broken: {e!r}' ) from e
			return
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout waiting to write {bytes(data)=}' )
	
	async def starttls_client ( self, server_hostname: str ) -> None:
		context = self.client_ssl_context()
		
		ssl_stream = trio.SSLStream (
			self.stream,
			ssl_context = context,
			server_hostname = server_hostname,
			https_compatible = True,
		)
		self.stream = ssl_stream
		# trio would otherwise run the handshake lazily on the first read or write
		with trio.move_on_after ( self.timeout ):
			try:
				await ssl_stream.do_handshake()
			except trio.BrokenResourceError as e:
				raise ssl.SSLError ( f'TLS handshake failed: {e.__cause__ or e!r}' ) from e
			self.tls = True
			return
		raise TimeoutError ( f'{type(self).__module__}.{type(self).__name__} timeout during TLS handshake' )
	
	async def close ( self ) -> None:
		#log = logger.getChild ( 'TrioTransport.close' )
		with trio.move_on_after ( 0.05 ):
			await self.stream.aclose()
