# python imports:
from abc import ABCMeta, abstractmethod
import logging
import ssl
from typing import Optional as Opt

# pop3_client imports:
from util import BYTES

logger = logging.getLogger ( __name__ )


class Transport ( metaclass = ABCMeta ):
	'''
	one byte stream to a POP3 server
	
	a transport starts out plain (or already encrypted for pop3s) and is
	upgraded in place by starttls_client(), reads and writes keep working
	on the same object afterwards
	'''
	ssl_context: Opt[ssl.SSLContext] = None
	tls: bool = False # set once the stream is encrypted
	
	def client_ssl_context ( self ) -> ssl.SSLContext:
		if self.ssl_context is None:
			self.ssl_context = ssl.create_default_context ( ssl.Purpose.SERVER_AUTH )
		return self.ssl_context
	
	def _not_implemented ( self, method: str ) -> NotImplementedError:
		cls = type ( self )
		return NotImplementedError ( f'{cls.__module__}.{cls.__name__}.{method}()' )


class SyncTransport ( Transport ):
	@abstractmethod
	def read ( self ) -> bytes:
		''' returns b'' when the peer has closed the connection '''
		raise self._not_implemented ( 'read' )
	
	@abstractmethod
	def write ( self, data: BYTES ) -> None:
		raise self._not_implemented ( 'write' )
	
	@abstractmethod
	def starttls_client ( self, server_hostname: str ) -> None:
		''' run the TLS handshake, certificate and hostname checks are up to the ssl context '''
		raise self._not_implemented ( 'starttls_client' )
	
	@abstractmethod
	def close ( self ) -> None:
		raise self._not_implemented ( 'close' )


class AsyncTransport ( Transport ):
	@abstractmethod
	async def read ( self ) -> bytes:
		''' returns b'' when the peer has closed the connection '''
		raise self._not_implemented ( 'read' )
	
	@abstractmethod
	async def write ( self, data: BYTES ) -> None:
		raise self._not_implemented ( 'write' )
	
	@abstractmethod
	async def starttls_client ( self, server_hostname: str ) -> None:
		raise self._not_implemented ( 'starttls_client' )
	
	@abstractmethod
	async def close ( self ) -> None:
		raise self._not_implemented ( 'close' )
