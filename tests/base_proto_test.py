# python imports:
import contextlib
import logging
from pathlib import Path
import sys
from typing import Iterator, List
import unittest

if __name__=='__main__': # pragma: no cover
	sys.path.append ( str ( Path ( __file__ ).parent.parent.absolute() ) )

# pop3_client imports:
import base_proto
from util import BYTES, strip_eol

logger = logging.getLogger ( __name__ )

@contextlib.contextmanager
def quiet_logging ( quiet: bool = True ) -> Iterator[None]:
	try:
		if quiet:
			logging.disable ( logging.CRITICAL )
		yield None
	finally:
		if quiet:
			logging.disable ( logging.NOTSET )


class OkResponse ( base_proto.BaseResponse ):
	def __init__ ( self, line: BYTES ) -> None:
		self.line = bytes ( line )
		super().__init__()
	def is_success ( self ) -> bool:
		return self.line.startswith ( b'+' )

util = base_proto.ClientUtil ( OkResponse )


class EchoRequest ( base_proto.RequestT[OkResponse] ):
	responsecls = OkResponse
	def __init__ ( self, line: str, multi: bool = False ) -> None:
		self.line = line
		self.multi = multi
		self.body: List[bytes] = []
	def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
		event = base_proto.NeedDataEvent()
		yield from util.send_recv_ok ( self.line, event )
		if self.multi:
			self.body = yield from util.recv_multi()
		assert event.response is not None
		raise event.response


class TestProtocol ( base_proto.ClientProtocol ):
	_MAXLINE = 42


def IsSendData ( evt: base_proto.Event ) -> bytes:
	assert isinstance ( evt, base_proto.SendDataEvent )
	return b''.join ( evt.chunks )


class Tests ( unittest.TestCase ):
	def test_abstract ( self ) -> None:
		test = self
		
		class BadResponse ( base_proto.BaseResponse ):
			def is_success ( self ) -> bool:
				return super().is_success()
		with test.assertRaises ( NotImplementedError ):
			BadResponse().is_success()
		
		class BadRequest ( base_proto.BaseRequest ):
			def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
				return super()._client_protocol ( client )
		with test.assertRaises ( NotImplementedError ):
			BadRequest()._client_protocol ( TestProtocol ( False ) )
		
		class BadProtocol ( base_proto.Protocol ):
			def _receive_line ( self, line: bytes ) -> Iterator[base_proto.Event]:
				return super()._receive_line ( line )
		with test.assertRaises ( NotImplementedError ):
			BadProtocol ( False )._receive_line ( b'' )
	
	def test_line_assembly ( self ) -> None:
		tp = TestProtocol ( False )
		r = EchoRequest ( 'ECHO\r\n' )
		self.assertEqual ( [ IsSendData ( evt ) for evt in tp.send ( r ) ], [ b'ECHO\r\n' ] )
		self.assertEqual ( list ( tp.receive ( b'+O' ) ), [] )
		self.assertIsNone ( r.base_response )
		self.assertEqual ( list ( tp.receive ( b'K\r' ) ), [] )
		self.assertEqual ( list ( tp.receive ( b'\n' ) ), [] )
		self.assertEqual ( r.response.line, b'+OK\r\n' )
	
	def test_extra_lines_stay_buffered ( self ) -> None:
		tp = TestProtocol ( False )
		r1 = EchoRequest ( 'ONE\r\n' )
		list ( tp.send ( r1 ) )
		list ( tp.receive ( b'+one\r\n+two\r\n+thr' ) )
		self.assertEqual ( r1.response.line, b'+one\r\n' )
		self.assertEqual ( tp.pending(), len ( b'+two\r\n+thr' ) )
		
		# the buffered reply is handed to the next request without another read
		r2 = EchoRequest ( 'TWO\r\n' )
		list ( tp.send ( r2 ) )
		self.assertEqual ( r2.response.line, b'+two\r\n' )
		self.assertEqual ( tp.pending(), len ( b'+thr' ) )
	
	def test_multi_line ( self ) -> None:
		tp = TestProtocol ( False )
		r = EchoRequest ( 'MULTI\r\n', multi = True )
		list ( tp.send ( r ) )
		list ( tp.receive (
			b'+ok here it comes\r\n'
			b'first\r\n'
			b'..dotted\r\n'
			b'..\r\n'
		) )
		self.assertIsNone ( r.base_response )
		list ( tp.receive ( b'\r\n' b'.\r\n' ) )
		self.assertEqual ( r.response.line, b'+ok here it comes\r\n' )
		self.assertEqual ( r.body, [ b'first', b'.dotted', b'.', b'' ] )
		self.assertEqual ( tp.pending(), 0 )
	
	def test_negative_reply ( self ) -> None:
		tp = TestProtocol ( False )
		r = EchoRequest ( 'MULTI\r\n', multi = True )
		list ( tp.send ( r ) )
		with self.assertRaises ( OkResponse ) as cm:
			list ( tp.receive ( b'-no\r\n' ) )
		self.assertEqual ( cm.exception.line, b'-no\r\n' )
		self.assertIsNone ( tp.request )
	
	def test_eof ( self ) -> None:
		tp = TestProtocol ( False )
		list ( tp.send ( EchoRequest ( 'MULTI\r\n', multi = True ) ) )
		list ( tp.receive ( b'+ok\r\nline 1\r\npartial' ) )
		with self.assertRaises ( base_proto.ConnectionAborted ):
			list ( tp.receive ( b'' ) )
		self.assertTrue ( issubclass ( base_proto.ConnectionAborted, base_proto.Closed ) )
	
	def test_maxline ( self ) -> None:
		tp = TestProtocol ( False )
		list ( tp.send ( EchoRequest ( 'ECHO\r\n' ) ) )
		with self.assertRaises ( base_proto.Closed ):
			list ( tp.receive ( b'X' * tp._MAXLINE ) )
	
	def test_exit_without_response ( self ) -> None:
		class InvalidRequest ( base_proto.BaseRequest ):
			def _client_protocol ( self, client: base_proto.ClientProtocol ) -> base_proto.RequestProtocolGenerator:
				yield from () # this will trigger internal protocol error below
		tp = TestProtocol ( False )
		with self.assertRaises ( base_proto.Closed ) as cm:
			with quiet_logging():
				list ( tp.send ( InvalidRequest() ) )
		self.assertEqual ( repr ( cm.exception ), "Closed('INTERNAL ERROR - CLIENT PROTOCOLS MUST THROW THEIR RESPONSE')" )
		self.assertIsNone ( tp.request )
	
	def test_handler_exception_is_thrown_back ( self ) -> None:
		tp = TestProtocol ( False )
		gen = tp.send ( EchoRequest ( 'ECHO\r\n' ) )
		event = next ( gen )
		try:
			raise OSError ( 'write failed' )
		except OSError:
			event.exc_info = sys.exc_info()
		with self.assertRaises ( base_proto.Closed ) as cm:
			with quiet_logging():
				next ( gen )
		self.assertIsInstance ( cm.exception.__cause__, OSError )
		self.assertIsNone ( tp.request )
	
	def test_strip_eol ( self ) -> None:
		self.assertEqual ( strip_eol ( b'abc\r\n' ), b'abc' )
		self.assertEqual ( strip_eol ( b'abc\n' ), b'abc' )
		self.assertEqual ( strip_eol ( b'abc\r' ), b'abc\r' )
		self.assertEqual ( strip_eol ( memoryview ( b'abc' ) ), b'abc' )

if __name__ == '__main__':
	logging.basicConfig ( level = logging.DEBUG )
	unittest.main()
