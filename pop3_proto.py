#region PROLOGUE --------------------------------------------------------------
from __future__ import annotations

# python imports:
from abc import abstractmethod
import email
import email.message
import email.policy
from enum import Enum
import hashlib
import logging
import re
from typing import (
	Dict, FrozenSet, Iterator, List, NamedTuple, Optional as Opt,
	Sequence as Seq, Tuple, Union,
)

# pop3_client imports:
from base_proto import (
	BaseResponse, ResponseType, RequestT, Event, NeedDataEvent, Closed,
	ConnectionAborted, UpgradeFailed, ProtocolError, InvalidReply,
	RequestProtocolGenerator, ClientProtocol, ClientUtil,
)
from util import bytes_types, BYTES, b2s, s2b, strip_eol

logger = logging.getLogger ( __name__ )

__all__ = [
	'Stage', 'Security', 'ConnectError', 'GreetingRejected', 'WrongStage',
	'Closed', 'ConnectionAborted', 'UpgradeFailed', 'ProtocolError',
	'InvalidReply', 'Response', 'SuccessResponse', 'ErrorResponse',
	'GreetingResponse', 'MultiResponse', 'CapaResponse', 'StatResponse',
	'ListMessage', 'ListResponse', 'UidlMessage', 'UidlResponse',
	'RetrResponse', 'StartTlsBeginEvent', 'apop_hash', 'Request',
	'GreetingRequest', 'CapaRequest', 'StartTlsRequest', 'UserPassRequest',
	'ApopRequest', 'StatRequest', 'ListRequest', 'RetrRequest', 'TopRequest',
	'DeleRequest', 'NoOpRequest', 'RsetRequest', 'UidlRequest',
	'QuitRequest', 'Client',
]

_r_eol = re.compile ( r'[\r\n]' )
_r_msg_octets = re.compile ( r'(\d+) (\d+)(?:\s|$)' )
_r_msg_uid = re.compile ( r'(\d+) ([\x21-\x7e]{1,70})\s*$' )
_r_apop_challenge = re.compile ( r'(<[^<>]*>)' )

POSITIVE = '+OK'
NEGATIVE = '-ERR'
MSGNO_MAX = 0xFFFFFFFF


class Stage ( Enum ):
	UNAUTHENTICATED = 'UNAUTHENTICATED' # RFC1939 AUTHORIZATION state
	AUTHENTICATED = 'AUTHENTICATED' # RFC1939 TRANSACTION state
	CLOSING = 'CLOSING' # QUIT sent or connection lost, nothing more can be sent


class Security ( Enum ):
	NONE = 'NONE' # plain text for the whole session
	STARTTLS = 'STARTTLS' # plain text connect then upgrade with STLS
	TLS = 'TLS' # encrypted from connect (pop3s)


class ConnectError ( Exception ):
	pass


class GreetingRejected ( ConnectError ):
	pass


class WrongStage ( Exception ):
	''' the command isn't legal in the session's current stage, nothing was sent '''


def _msgno ( msg: int ) -> int:
	if isinstance ( msg, bool ) or not isinstance ( msg, int ) or not ( 1 <= msg <= MSGNO_MAX ):
		raise ValueError ( f'invalid message number {msg=}' )
	return msg


def _arg ( name: str, value: str, *, spaces: bool = False, secret: bool = False ) -> str:
	value = str ( value )
	if not value or _r_eol.search ( value ) or ( ' ' in value and not spaces ):
		raise ValueError ( f'invalid {name}' if secret else f'invalid {name}={value!r}' )
	return value


def _command ( verb: str, *args: Union[str,int] ) -> str:
	return ' '.join ( [ verb, *map ( str, args ) ] ) + '\r\n'


#endregion
#region RESPONSES -------------------------------------------------------------

class Response ( BaseResponse ):
	def __init__ ( self, ok: bool, message: str ) -> None:
		self.ok = ok
		self.message = message
		super().__init__ ( message )
	
	@staticmethod
	def parse ( line: BYTES ) -> Union[SuccessResponse,ErrorResponse]:
		#log = logger.getChild ( 'Response.parse' )
		assert isinstance ( line, bytes_types ), f'invalid {line=}'
		text = b2s ( strip_eol ( line ), 'utf-8', 'replace' )
		for marker, responsecls in (
			( POSITIVE, SuccessResponse ),
			( NEGATIVE, ErrorResponse ),
		):
			if text == marker:
				return responsecls ( '' )
			if text.startswith ( f'{marker} ' ):
				return responsecls ( text[len(marker)+1:] )
		raise InvalidReply ( text )
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.ok!r}, {self.message!r})'


class SuccessResponse ( Response ):
	def __init__ ( self, message: str ) -> None:
		return super().__init__ ( True, message )
	def is_success ( self ) -> bool:
		return True


class ErrorResponse ( Response ):
	def __init__ ( self, message: str ) -> None:
		return super().__init__ ( False, message )
	def is_success ( self ) -> bool:
		return False


class GreetingResponse ( SuccessResponse ):
	apop_challenge: Opt[str]
	
	def __init__ ( self, message: str ) -> None:
		m = _r_apop_challenge.search ( message )
		self.apop_challenge = m.group ( 1 ) if m else None
		super().__init__ ( message )


class MultiResponse ( SuccessResponse ):
	'''
	a positive status line followed by a dot-terminated body
	
	`raw` holds the body lines as received, minus line endings and with
	dot-stuffing removed
	'''
	def __init__ ( self, message: str, raw: Seq[bytes] ) -> None:
		self.raw: Tuple[bytes,...] = tuple ( raw )
		super().__init__ ( message )
	
	@property
	def lines ( self ) -> Tuple[str,...]:
		return tuple ( b2s ( line, 'utf-8', 'replace' ) for line in self.raw )
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.ok!r}, {self.message!r}, {", ".join(map(repr,self.lines))})'


class CapaResponse ( MultiResponse ):
	capa: Dict[str,str]
	
	def __init__ ( self, message: str, raw: Seq[bytes] ) -> None:
		super().__init__ ( message, raw )
		self.capa = {}
		for line in self.lines:
			capa_name, *capa_params = line.split ( ' ', 1 )
			self.capa[capa_name.upper()] = capa_params[0].rstrip() if capa_params else ''
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		capa_ = ', '.join ( [
			f'{k!r}: {v!r}' for k, v in sorted ( self.capa.items() )
		] )
		return f'{cls.__module__}.{cls.__name__}({self.ok!r}, {self.message!r}, capa={{{capa_}}})'


class StatResponse ( SuccessResponse ):
	count: int
	octets: int
	
	def __init__ ( self, message: str ) -> None:
		m = _r_msg_octets.match ( message )
		if not m:
			raise InvalidReply ( f'malformed STAT reply: {message!r}' )
		self.count, self.octets = map ( int, m.groups() )
		super().__init__ ( message )
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.ok!r}, {self.message!r}, count={self.count!r}, octets={self.octets!r})'


class ListMessage ( NamedTuple ):
	id: int
	octets: int
	
	@classmethod
	def parse ( cls, text: str ) -> ListMessage:
		m = _r_msg_octets.match ( text )
		if not m:
			raise InvalidReply ( f'malformed scan listing: {text!r}' )
		return cls ( *map ( int, m.groups() ) )


class ListResponse ( SuccessResponse ):
	messages: List[ListMessage]
	
	def __init__ ( self, message: str, messages: Seq[ListMessage] ) -> None:
		self.messages = list ( messages )
		super().__init__ ( message )
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.ok!r}, {self.message!r}, messages={self.messages!r})'


class UidlMessage ( NamedTuple ):
	id: int
	uid: str
	
	@classmethod
	def parse ( cls, text: str ) -> UidlMessage:
		m = _r_msg_uid.match ( text )
		if not m:
			raise InvalidReply ( f'malformed unique-id listing: {text!r}' )
		msg, uid = m.groups()
		return cls ( int ( msg ), uid )


class UidlResponse ( SuccessResponse ):
	messages: List[UidlMessage]
	
	def __init__ ( self, message: str, messages: Seq[UidlMessage] ) -> None:
		self.messages = list ( messages )
		super().__init__ ( message )
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.ok!r}, {self.message!r}, messages={self.messages!r})'


class RetrResponse ( MultiResponse ):
	''' message content from RETR or TOP, the status line is only in .message '''
	
	@property
	def content ( self ) -> bytes:
		return b''.join ( line + b'\r\n' for line in self.raw )
	
	def to_email ( self ) -> email.message.EmailMessage:
		msg = email.message_from_bytes ( self.content, policy = email.policy.default )
		assert isinstance ( msg, email.message.EmailMessage )
		return msg
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}({self.ok!r}, {self.message!r}, {len(self.content)!r} octets)'


client_util = ClientUtil ( Response.parse, 'utf-8' )

#endregion
#region EVENTS ----------------------------------------------------------------

class StartTlsBeginEvent ( Event ):
	pass


def apop_hash ( challenge: str, pwd: str ) -> str:
	return hashlib.md5 ( s2b ( f'{challenge}{pwd}', 'utf-8' ) ).hexdigest()


#endregion
#region REQUESTS --------------------------------------------------------------

class Request ( RequestT[ResponseType] ):
	verb: str
	stages: FrozenSet[Stage] = frozenset ( [ Stage.AUTHENTICATED ] )
	tls_excluded: bool = False
	
	def _client_protocol ( self, client: ClientProtocol ) -> RequestProtocolGenerator:
		assert isinstance ( client, Client )
		yield from self.client_protocol ( client )
	
	@abstractmethod
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		cls = self.__class__
		raise NotImplementedError ( f'{cls.__module__}.{cls.__name__}.client_protocol()' )


class GreetingRequest ( Request[GreetingResponse] ):
	verb = '(greeting)'
	responsecls = GreetingResponse
	stages = frozenset ( [ Stage.UNAUTHENTICATED ] )
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		#log = logger.getChild ( 'GreetingRequest.client_protocol' )
		event = NeedDataEvent()
		yield from client_util.recv_ok ( event )
		assert isinstance ( event.response, Response )
		r = GreetingResponse ( event.response.message )
		client.apop_challenge = r.apop_challenge
		raise r


class CapaRequest ( Request[CapaResponse] ): # RFC2449
	verb = 'CAPA'
	responsecls = CapaResponse
	stages = frozenset ( [ Stage.UNAUTHENTICATED, Stage.AUTHENTICATED ] )
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		event = NeedDataEvent()
		yield from client_util.send_recv_ok ( _command ( self.verb ), event ) # +OK Capability list follows
		assert isinstance ( event.response, Response )
		raw = yield from client_util.recv_multi()
		raise CapaResponse ( event.response.message, raw )


class StartTlsRequest ( Request[SuccessResponse] ): # RFC2595 Using TLS with IMAP, POP3 and ACAP
	verb = 'STLS'
	responsecls = SuccessResponse
	stages = frozenset ( [ Stage.UNAUTHENTICATED ] )
	tls_excluded = True
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		#log = logger.getChild ( 'StartTlsRequest.client_protocol' )
		event = NeedDataEvent()
		yield from client_util.send_recv_ok ( _command ( self.verb ), event )
		if client.pending():
			# anything the server sent after its +OK arrived in the clear and could have been injected
			raise UpgradeFailed ( 'unexpected data received before TLS negotiation' )
		yield from StartTlsBeginEvent().go()
		client.tls = True
		# RFC2595#4: the server does not greet the client again after the handshake
		assert isinstance ( event.response, SuccessResponse )
		raise event.response


class UserPassRequest ( Request[SuccessResponse] ):
	verb = 'USER'
	responsecls = SuccessResponse
	stages = frozenset ( [ Stage.UNAUTHENTICATED ] )
	
	def __init__ ( self, uid: str, pwd: str ) -> None:
		self.uid = _arg ( 'uid', uid, spaces = True )
		self.pwd = _arg ( 'pwd', pwd, spaces = True, secret = True )
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}(uid={self.uid!r})'
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		event1 = NeedDataEvent()
		yield from client_util.send_recv_ok ( _command ( 'USER', self.uid ), event1 )
		event2 = NeedDataEvent()
		# RFC1939#7: the password may contain spaces, it is the rest of the line
		yield from client_util.send_recv_ok ( f'PASS {self.pwd}\r\n', event2 )
		client.stage = Stage.AUTHENTICATED
		messages = [
			event.response.message for event in ( event1, event2 )
			if isinstance ( event.response, Response ) and event.response.message
		]
		raise SuccessResponse ( ' '.join ( messages ) )


class ApopRequest ( Request[SuccessResponse] ):
	verb = 'APOP'
	responsecls = SuccessResponse
	stages = frozenset ( [ Stage.UNAUTHENTICATED ] )
	
	def __init__ ( self, uid: str, pwd: str, challenge: str ) -> None:
		if not ( challenge[0:1] == '<' and challenge[-1:] == '>' ):
			raise ValueError ( f'invalid {challenge=}' )
		self.uid = _arg ( 'uid', uid )
		self.challenge = challenge
		self.digest = apop_hash ( challenge, pwd )
	
	def __repr__ ( self ) -> str:
		cls = type ( self )
		return f'{cls.__module__}.{cls.__name__}(uid={self.uid!r}, challenge={self.challenge!r})'
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		event = NeedDataEvent()
		yield from client_util.send_recv_ok ( _command ( self.verb, self.uid, self.digest ), event )
		client.stage = Stage.AUTHENTICATED
		assert isinstance ( event.response, SuccessResponse )
		raise event.response


class StatRequest ( Request[StatResponse] ):
	verb = 'STAT'
	responsecls = StatResponse
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		event = NeedDataEvent()
		yield from client_util.send_recv_ok ( _command ( self.verb ), event )
		assert isinstance ( event.response, Response )
		raise StatResponse ( event.response.message )


class ListRequest ( Request[ListResponse] ):
	verb = 'LIST'
	responsecls = ListResponse
	
	def __init__ ( self, msg: Opt[int] = None ) -> None:
		self.msg = None if msg is None else _msgno ( msg )
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		event = NeedDataEvent()
		if self.msg is not None:
			yield from client_util.send_recv_ok ( _command ( self.verb, self.msg ), event )
			assert isinstance ( event.response, Response )
			text = event.response.message
			raise ListResponse ( text, [ ListMessage.parse ( text ) ] )
		yield from client_util.send_recv_ok ( _command ( self.verb ), event )
		assert isinstance ( event.response, Response )
		raw = yield from client_util.recv_multi()
		raise ListResponse ( event.response.message, [
			ListMessage.parse ( b2s ( line, 'utf-8', 'replace' ) ) for line in raw
		] )


class UidlRequest ( Request[UidlResponse] ):
	verb = 'UIDL'
	responsecls = UidlResponse
	
	def __init__ ( self, msg: Opt[int] = None ) -> None:
		self.msg = None if msg is None else _msgno ( msg )
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		event = NeedDataEvent()
		if self.msg is not None:
			yield from client_util.send_recv_ok ( _command ( self.verb, self.msg ), event )
			assert isinstance ( event.response, Response )
			text = event.response.message
			raise UidlResponse ( text, [ UidlMessage.parse ( text ) ] )
		yield from client_util.send_recv_ok ( _command ( self.verb ), event )
		assert isinstance ( event.response, Response )
		raw = yield from client_util.recv_multi()
		raise UidlResponse ( event.response.message, [
			UidlMessage.parse ( b2s ( line, 'utf-8', 'replace' ) ) for line in raw
		] )


class RetrRequest ( Request[RetrResponse] ):
	verb = 'RETR'
	responsecls = RetrResponse
	
	def __init__ ( self, msg: int ) -> None:
		self.msg = _msgno ( msg )
	
	def _line ( self ) -> str:
		return _command ( self.verb, self.msg )
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		event = NeedDataEvent()
		yield from client_util.send_recv_ok ( self._line(), event )
		assert isinstance ( event.response, Response )
		raw = yield from client_util.recv_multi()
		raise RetrResponse ( event.response.message, raw )


class TopRequest ( RetrRequest ):
	verb = 'TOP'
	
	def __init__ ( self, msg: int, lines: int ) -> None:
		super().__init__ ( msg )
		if isinstance ( lines, bool ) or not isinstance ( lines, int ) or lines < 0:
			raise ValueError ( f'invalid {lines=}' )
		self.lines = lines
	
	def _line ( self ) -> str:
		return _command ( self.verb, self.msg, self.lines )


class DeleRequest ( Request[SuccessResponse] ):
	verb = 'DELE'
	responsecls = SuccessResponse
	
	def __init__ ( self, msg: int ) -> None:
		self.msg = _msgno ( msg )
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client_util.send_recv_done ( _command ( self.verb, self.msg ) )


class RsetRequest ( Request[SuccessResponse] ):
	verb = 'RSET'
	responsecls = SuccessResponse
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client_util.send_recv_done ( _command ( self.verb ) )


class NoOpRequest ( Request[SuccessResponse] ):
	verb = 'NOOP'
	responsecls = SuccessResponse
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		yield from client_util.send_recv_done ( _command ( self.verb ) )


class QuitRequest ( Request[SuccessResponse] ):
	verb = 'QUIT'
	responsecls = SuccessResponse
	stages = frozenset ( [ Stage.UNAUTHENTICATED, Stage.AUTHENTICATED ] )
	
	def client_protocol ( self, client: Client ) -> RequestProtocolGenerator:
		#log = logger.getChild ( 'QuitRequest.client_protocol' )
		client.stage = Stage.CLOSING # even a failed QUIT ends the session
		yield from client_util.send_recv_done ( _command ( self.verb ) )

#endregion
#region CLIENT ----------------------------------------------------------------

class Client ( ClientProtocol ):
	_MAXLINE = 8192
	stage: Stage = Stage.UNAUTHENTICATED
	apop_challenge: Opt[str] = None
	
	def send ( self, request: RequestT[ResponseType] ) -> Iterator[Event]:
		log = logger.getChild ( 'Client.send' )
		assert isinstance ( request, Request ), f'invalid {request=}'
		if self.stage not in request.stages:
			log.debug ( f'refusing {request.verb} in {self.stage.name} stage' )
			raise WrongStage ( f'{request.verb} not permitted in {self.stage.name} stage' )
		if request.tls_excluded and self.tls:
			raise WrongStage ( f'{request.verb} not permitted when TLS is active' )
		yield from super().send ( request )
	
	def abort ( self ) -> None:
		self.stage = Stage.CLOSING
		super().abort()
	
	@property
	def authenticated ( self ) -> bool:
		return self.stage == Stage.AUTHENTICATED

#endregion
