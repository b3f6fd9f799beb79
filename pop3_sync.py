from __future__ import annotations

# python imports:
import logging
from typing import Optional as Opt

# pop3_client imports:
from event_handling import SyncClient, upgrade_failed_if_error
import pop3_proto as proto

logger = logging.getLogger ( __name__ )


class Client ( SyncClient ):
	protocls = proto.Client
	proto: proto.Client
	
	@property
	def stage ( self ) -> proto.Stage:
		return self.proto.stage
	
	@property
	def authenticated ( self ) -> bool:
		return self.proto.authenticated
	
	def greeting ( self ) -> proto.GreetingResponse:
		return self._request ( proto.GreetingRequest() )
	
	def capa ( self ) -> proto.CapaResponse:
		return self._request ( proto.CapaRequest() )
	
	def stls ( self ) -> proto.SuccessResponse:
		return self._request ( proto.StartTlsRequest() )
	
	def login ( self, uid: str, pwd: str ) -> proto.SuccessResponse:
		''' USER/PASS, PASS is only sent if the server accepts USER '''
		return self._request ( proto.UserPassRequest ( uid, pwd ) )
	
	def apop ( self, uid: str, pwd: str, challenge: Opt[str] = None ) -> proto.SuccessResponse:
		''' APOP using the challenge from the greeting unless one is given '''
		challenge = challenge or self.proto.apop_challenge
		if not challenge:
			raise ValueError ( 'server greeting did not include an APOP challenge' )
		return self._request ( proto.ApopRequest ( uid, pwd, challenge ) )
	
	def stat ( self ) -> proto.StatResponse:
		return self._request ( proto.StatRequest() )
	
	def list ( self, msg: Opt[int] = None ) -> proto.ListResponse:
		return self._request ( proto.ListRequest ( msg ) )
	
	def retr ( self, msg: int ) -> proto.RetrResponse:
		return self._request ( proto.RetrRequest ( msg ) )
	
	def top ( self, msg: int, lines: int ) -> proto.RetrResponse:
		return self._request ( proto.TopRequest ( msg, lines ) )
	
	def dele ( self, msg: int ) -> proto.SuccessResponse:
		return self._request ( proto.DeleRequest ( msg ) )
	
	def noop ( self ) -> proto.SuccessResponse:
		return self._request ( proto.NoOpRequest() )
	
	def rset ( self ) -> proto.SuccessResponse:
		return self._request ( proto.RsetRequest() )
	
	def uidl ( self, msg: Opt[int] = None ) -> proto.UidlResponse:
		return self._request ( proto.UidlRequest ( msg ) )
	
	def quit ( self ) -> proto.SuccessResponse:
		#log = logger.getChild ( 'Client.quit' )
		request = proto.QuitRequest()
		try:
			return self._request ( request )
		finally:
			if self.proto.stage == proto.Stage.CLOSING:
				self.close()
	
	def on_StartTlsBeginEvent ( self, event: proto.StartTlsBeginEvent ) -> None:
		log = logger.getChild ( 'Client.on_StartTlsBeginEvent' )
		log.debug ( f'starting TLS negotiation with {self.server_hostname!r}' )
		with upgrade_failed_if_error():
			self.transport.starttls_client ( self.server_hostname )
