from __future__ import annotations

# python imports:
from abc import ABCMeta
import contextlib
import logging
import sys
from typing import Iterator, Type

# pop3_client imports:
from base_proto import (
	RequestType, ResponseType, Event, SendDataEvent, ClientProtocol, Closed,
	UpgradeFailed,
)
from transport import SyncTransport, AsyncTransport
from util import BYTES, b2s

logger = logging.getLogger ( __name__ )


@contextlib.contextmanager
def _event_exception_safety ( event: Event ) -> Iterator[None]:
	try:
		yield
	except Exception:
		event.exc_info = sys.exc_info()


@contextlib.contextmanager
def close_if_oserror() -> Iterator[None]:
	try:
		yield
	except OSError as e:
		raise Closed ( repr ( e ) ) from e


@contextlib.contextmanager
def upgrade_failed_if_error() -> Iterator[None]:
	try:
		yield
	except ( OSError, ValueError ) as e: # ssl.SSLError and ssl.CertificateError are OSErrors
		raise UpgradeFailed ( repr ( e ) ) from e


def _loggable ( chunk: BYTES ) -> str:
	text = b2s ( chunk, 'utf-8', 'replace' ).rstrip()
	if text[:5].upper() == 'PASS ':
		return f'{text[:5]}********'
	return text


class SyncEventHandler:
	transport: SyncTransport
	
	def on_SendDataEvent ( self, event: SendDataEvent ) -> None:
		log = logger.getChild ( 'SyncEventHandler.on_SendDataEvent' )
		for chunk in event.chunks:
			log.debug ( f'C>{_loggable(chunk)}' )
			with close_if_oserror():
				self.transport.write ( chunk )
	
	def _on_event ( self, event: Event ) -> None:
		#log = logger.getChild ( 'SyncEventHandler._on_event' )
		with _event_exception_safety ( event ):
			func = getattr ( self, f'on_{type(event).__name__}' )
			func ( event )
	
	def close ( self ) -> None:
		self.transport.close()


class AsyncEventHandler:
	transport: AsyncTransport
	
	async def on_SendDataEvent ( self, event: SendDataEvent ) -> None:
		log = logger.getChild ( 'AsyncEventHandler.on_SendDataEvent' )
		for chunk in event.chunks:
			log.debug ( f'C>{_loggable(chunk)}' )
			with close_if_oserror():
				await self.transport.write ( chunk )
	
	async def _on_event ( self, event: Event ) -> None:
		#log = logger.getChild ( 'AsyncEventHandler._on_event' )
		with _event_exception_safety ( event ):
			func = getattr ( self, f'on_{type(event).__name__}' )
			await func ( event )
	
	async def close ( self ) -> None:
		await self.transport.close()


class Client ( metaclass = ABCMeta ):
	protocls: Type[ClientProtocol]
	proto: ClientProtocol


class SyncClient ( SyncEventHandler, Client ):
	def __init__ ( self,
		transport: SyncTransport,
		tls: bool,
		server_hostname: str,
	) -> None:
		self.transport = transport
		self.server_hostname = server_hostname
		self.proto = self.protocls ( tls )
	
	def _request ( self, request: RequestType[ResponseType] ) -> ResponseType:
		log = logger.getChild ( 'SyncClient._request' )
		try:
			for event in self.proto.send ( request ):
				self._on_event ( event )
			while not request.base_response:
				with close_if_oserror():
					data: bytes = self.transport.read()
				log.debug ( f'S>{b2s(data,"utf-8","replace").rstrip()}' )
				for event in self.proto.receive ( data ):
					self._on_event ( event )
		except Closed:
			self.proto.abort()
			self.close()
			raise
		assert (
			request.base_response is not None
		and
			request.base_response.is_success()
		), f'invalid {request.base_response=}'
		return request.response


class AsyncClient ( AsyncEventHandler, Client ):
	def __init__ ( self,
		transport: AsyncTransport,
		tls: bool,
		server_hostname: str,
	) -> None:
		self.transport = transport
		self.server_hostname = server_hostname
		self.proto = self.protocls ( tls )
	
	async def _request ( self, request: RequestType[ResponseType] ) -> ResponseType:
		log = logger.getChild ( 'AsyncClient._request' )
		try:
			for event in self.proto.send ( request ):
				await self._on_event ( event )
			while not request.base_response:
				with close_if_oserror():
					data: bytes = await self.transport.read()
				log.debug ( f'S>{b2s(data,"utf-8","replace").rstrip()}' )
				for event in self.proto.receive ( data ):
					await self._on_event ( event )
		except Closed:
			self.proto.abort()
			await self.close()
			raise
		assert (
			request.base_response is not None
		and
			request.base_response.is_success()
		), f'invalid {request.base_response=}'
		return request.response
