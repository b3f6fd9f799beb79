from __future__ import annotations

# python imports:
from abc import ABCMeta, abstractmethod
import logging
from types import TracebackType
from typing import (
	Callable, Generator, Generic, Iterator, List, Optional as Opt,
	Sequence as Seq, Tuple, Type, TypeVar, Union,
)

# pop3_client imports:
from util import bytes_types, BYTES, s2b, strip_eol

logger = logging.getLogger ( __name__ )

EXC_INFO = Opt[Union[
	Tuple[Type[BaseException],BaseException,TracebackType],
	Tuple[None,None,None],
]]


class Event ( Exception ):
	exc_info: EXC_INFO = None
	
	def go ( self ) -> Iterator[Event]:
		yield self
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}()'


class Closed ( Exception ):
	''' the connection is no longer usable '''
	def __init__ ( self, reason: str = '' ) -> None:
		super().__init__ ( reason or '(none given)' )


class ConnectionAborted ( Closed ):
	''' the peer closed the connection while a reply was expected '''


class UpgradeFailed ( Closed ):
	''' the server accepted the TLS upgrade but the handshake itself failed '''


class ProtocolError ( Exception ):
	pass


class InvalidReply ( ProtocolError ):
	''' a reply that doesn't have the shape its request expects '''


ResponseType = TypeVar ( 'ResponseType', bound = 'BaseResponse' )
class BaseResponse ( Exception, metaclass = ABCMeta ):
	@abstractmethod
	def is_success ( self ) -> bool:
		cls = self.__class__
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.is_success()' )


RequestProtocolGenerator = Generator[Event,None,None]


class BaseRequest ( metaclass = ABCMeta ):
	# this class is the basis of all client command handling
	# 1) client uses __init__() to construct (and validate) the request
	# 2) _client_protocol() implements the client-side state machine
	# 3) the state machine finishes by raising its response
	base_response: Opt[BaseResponse] = None
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}()'
	
	@abstractmethod
	def _client_protocol ( self, client: ClientProtocol ) -> RequestProtocolGenerator:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}._client_protocol()' )


class RequestT ( BaseRequest, Generic[ResponseType] ):
	responsecls: Type[ResponseType]
	
	@property
	def response ( self ) -> ResponseType:
		assert isinstance ( self.base_response, self.responsecls )
		return self.base_response
RequestType = RequestT[ResponseType]


class NeedDataEvent ( Event ):
	data: Opt[bytes] = None
	response: Opt[BaseResponse] = None
	
	def reset ( self ) -> NeedDataEvent:
		self.data = None
		self.response = None
		return self
	
	def go ( self ) -> Iterator[Event]:
		self.reset()
		yield from super().go()


class SendDataEvent ( Event ):
	
	def __init__ ( self, *chunks: bytes ) -> None:
		self.chunks: Seq[bytes] = chunks
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}(chunks={self.chunks!r})'


class Protocol ( metaclass = ABCMeta ):
	request: Opt[BaseRequest] = None
	request_protocol: Opt[Generator[Event,None,None]] = None
	need_data: Opt[NeedDataEvent] = None
	tls: bool # whether or not the connection is currently encrypted
	_MAXLINE: int
	
	def __init__ ( self, tls: bool ) -> None:
		self.tls = tls
		self._buf = bytearray()
	
	def receive ( self, data: BYTES ) -> Iterator[Event]:
		#log = logger.getChild ( 'Protocol.receive' )
		assert isinstance ( data, bytes_types ), f'invalid {data=}'
		if not data: # EOF indicator
			self._buf.clear()
			raise ConnectionAborted ( 'EOF' )
		self._buf += data
		yield from self._process()
		if self.need_data and len ( self._buf ) >= self._MAXLINE:
			raise Closed ( 'maximum line length exceeded' )
	
	def _process ( self ) -> Iterator[Event]:
		# only hand out lines while a request is waiting for them, anything
		# else stays buffered for the next reply
		while self.need_data and ( end := ( self._buf.find ( b'\n' ) + 1 ) ):
			line = bytes ( self._buf[:end] )
			del self._buf[:end]
			yield from self._receive_line ( line )
	
	@abstractmethod
	def _receive_line ( self, line: bytes ) -> Iterator[Event]:
		cls = type ( self )
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}._receive_line()' )
	
	def _reset_request ( self ) -> None:
		self.request = None
		self.request_protocol = None
		self.need_data = None
	
	def _run_protocol ( self ) -> Iterator[Event]:
		log = logger.getChild ( 'Protocol._run_protocol' )
		assert self.request is not None, f'invalid {self.request=}'
		assert self.request_protocol is not None, f'invalid {self.request_protocol=}'
		try:
			while True:
				event = next ( self.request_protocol )
				if isinstance ( event, NeedDataEvent ):
					if self.request.base_response is not None:
						log.warning ( f'INTERNAL ERROR - {self.request!r} pushed NeedDataEvent but has a response set - this can cause upstack deadlock ({self.request.base_response!r})' )
						self.request.base_response = None
					self.need_data = event.reset()
					return
				else:
					yield event
					if event.exc_info:
						self.request_protocol.throw ( event.exc_info[1] )
		except Closed:
			self._reset_request()
			raise
		except BaseResponse as response:
			request = self.request
			self._reset_request()
			if not response.is_success():
				raise
			request.base_response = response
		except ProtocolError:
			self._reset_request()
			raise
		except StopIteration:
			# client protocol *must* raise its response before exiting
			# if not, the event handler will get stuck waiting for data that never arrives
			request = self.request
			self._reset_request()
			if not request.base_response:
				log.warning (
					f'INTERNAL ERROR:'
					f' {type(request).__module__}.{type(request).__name__}'
					f'._client_protocol() exit w/o response - this can cause upstack deadlock'
				)
				raise Closed ( 'INTERNAL ERROR - CLIENT PROTOCOLS MUST THROW THEIR RESPONSE' )
		except Exception as e:
			self._reset_request()
			log.exception ( 'internal protocol error:' )
			raise Closed ( repr ( e ) ) from e


class ClientProtocol ( Protocol ):
	def send ( self, request: BaseRequest ) -> Iterator[Event]:
		#log = logger.getChild ( 'ClientProtocol.send' )
		assert self.request is None, f'trying to send {request=} but not finished processing {self.request=}'
		self.request = request
		self.request_protocol = request._client_protocol ( self )
		yield from self._run_protocol()
		yield from self._process()
	
	def pending ( self ) -> int:
		''' number of received bytes not yet handed to a request '''
		return len ( self._buf )
	
	def abort ( self ) -> None:
		''' forget the active request, the connection is unusable '''
		self._reset_request()
		self._buf.clear()
	
	def _receive_line ( self, line: bytes ) -> Iterator[Event]:
		#log = logger.getChild ( 'ClientProtocol._receive_line' )
		assert self.need_data, f'not expecting data at this time ({line!r})'
		self.need_data.data = line
		self.need_data = None
		yield from self._run_protocol()

#region client protocol helpers

class ClientUtil:
	def __init__ ( self,
		parser: Callable[[BYTES],BaseResponse],
		encoding: str = 'us-ascii',
	) -> None:
		self.parser = parser
		self.encoding = encoding
	
	def send ( self, line: str ) -> Iterator[Event]:
		assert line.endswith ( '\r\n' ), f'invalid {line=}'
		yield from ( event := SendDataEvent ( s2b ( line, self.encoding ) ) ).go()
	
	def recv_ok ( self, event: Opt[NeedDataEvent] = None ) -> Iterator[Event]:
		if event is None:
			event = NeedDataEvent()
		yield from event.reset().go()
		event.response = response = self.parser ( event.data or b'' )
		if not response.is_success():
			raise response
	
	def recv_done ( self ) -> Iterator[Event]:
		yield from ( event := NeedDataEvent() ).go()
		response = self.parser ( event.data or b'' )
		raise response
	
	def recv_multi ( self, event: Opt[NeedDataEvent] = None ) -> Generator[Event,None,List[bytes]]:
		'''
		collect the body of a dot-terminated multi-line reply (the status line
		must already have been consumed)
		
		the terminating '.' line is consumed but not returned, the line endings
		are removed and one leading dot is removed from dot-stuffed lines
		'''
		if event is None:
			event = NeedDataEvent()
		lines: List[bytes] = []
		while True:
			yield from event.go()
			line = strip_eol ( event.data or b'' )
			if line == b'.':
				return lines
			if line[:2] == b'..':
				line = line[1:]
			lines.append ( line )
	
	def send_recv_ok ( self, line: str, event: Opt[NeedDataEvent] = None ) -> Iterator[Event]:
		yield from self.send ( line )
		yield from self.recv_ok ( event )
	
	def send_recv_done ( self, line: str ) -> Iterator[Event]:
		yield from self.send ( line )
		yield from self.recv_done()

#endregion client protocol helpers
