from __future__ import annotations

# python imports:
import logging
import socket
import ssl
from typing import Optional as Opt, Type

# pop3_client imports:
from transport import SyncTransport
from util import BYTES

logger = logging.getLogger ( __name__ )


class SocketTransport ( SyncTransport ):
	sock: socket.socket
	bufsize: int = 4096
	
	def __init__ ( self, sock: socket.socket ) -> None:
		self.sock = sock
	
	@classmethod
	def connect ( cls: Type[SocketTransport],
		hostname: str,
		port: int,
		tls: bool,
		ssl_context: Opt[ssl.SSLContext] = None,
		timeout: Opt[float] = None,
	) -> SocketTransport:
		log = logger.getChild ( 'SocketTransport.connect' )
		
		for family, type_, proto, _, address in socket.getaddrinfo ( hostname, port, type = socket.SOCK_STREAM ):
			sock = socket.socket ( family, type_, proto )
			sock.settimeout ( timeout )
			try:
				sock.connect ( address )
			except OSError as e:
				log.warning ( f'Error connecting to {address=}: {e!r}' )
				sock.close()
				continue
			self = cls ( sock )
			self.ssl_context = ssl_context
			if tls:
				try:
					self.starttls_client ( hostname )
				except Exception:
					self.close()
					raise
			return self
		raise ConnectionError ( f'Unable to connect to {hostname=} {port=}' )
	
	def read ( self ) -> bytes:
		#log = logger.getChild ( 'SocketTransport.read' )
		return self.sock.recv ( self.bufsize )
	
	def write ( self, data: BYTES ) -> None:
		#log = logger.getChild ( 'SocketTransport.write' )
		self.sock.sendall ( data )
	
	def starttls_client ( self, server_hostname: str ) -> None:
		context = self.client_ssl_context()
		
		# the handshake runs here, on the same connected socket
		self.sock = context.wrap_socket (
			self.sock,
			server_hostname = server_hostname,
		)
		self.tls = True
	
	def close ( self ) -> None:
		#log = logger.getChild ( 'SocketTransport.close' )
		self.sock.close()
