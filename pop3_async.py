from __future__ import annotations

# python imports:
import logging
from typing import Optional as Opt

# pop3_client imports:
from event_handling import AsyncClient, upgrade_failed_if_error
import pop3_proto as proto

logger = logging.getLogger ( __name__ )


class Client ( AsyncClient ):
	protocls = proto.Client
	proto: proto.Client
	
	@property
	def stage ( self ) -> proto.Stage:
		return self.proto.stage
	
	@property
	def authenticated ( self ) -> bool:
		return self.proto.authenticated
	
	async def greeting ( self ) -> proto.GreetingResponse:
		return await self._request ( proto.GreetingRequest() )
	
	async def capa ( self ) -> proto.CapaResponse:
		#log = logger.getChild ( 'Client.capa' )
		return await self._request ( proto.CapaRequest() )
	
	async def stls ( self ) -> proto.SuccessResponse:
		return await self._request ( proto.StartTlsRequest() )
	
	async def login ( self, uid: str, pwd: str ) -> proto.SuccessResponse:
		return await self._request ( proto.UserPassRequest ( uid, pwd ) )
	
	async def apop ( self, uid: str, pwd: str, challenge: Opt[str] = None ) -> proto.SuccessResponse:
		challenge = challenge or self.proto.apop_challenge
		if not challenge:
			raise ValueError ( 'server greeting did not include an APOP challenge' )
		return await self._request ( proto.ApopRequest ( uid, pwd, challenge ) )
	
	async def stat ( self ) -> proto.StatResponse:
		return await self._request ( proto.StatRequest() )
	
	async def list ( self, msg: Opt[int] = None ) -> proto.ListResponse:
		return await self._request ( proto.ListRequest ( msg ) )
	
	async def retr ( self, msg: int ) -> proto.RetrResponse:
		return await self._request ( proto.RetrRequest ( msg ) )
	
	async def top ( self, msg: int, lines: int ) -> proto.RetrResponse:
		return await self._request ( proto.TopRequest ( msg, lines ) )
	
	async def dele ( self, msg: int ) -> proto.SuccessResponse:
		return await self._request ( proto.DeleRequest ( msg ) )
	
	async def noop ( self ) -> proto.SuccessResponse:
		return await self._request ( proto.NoOpRequest() )
	
	async def rset ( self ) -> proto.SuccessResponse:
		return await self._request ( proto.RsetRequest() )
	
	async def uidl ( self, msg: Opt[int] = None ) -> proto.UidlResponse:
		return await self._request ( proto.UidlRequest ( msg ) )
	
	async def quit ( self ) -> proto.SuccessResponse:
		try:
			return await self._request ( proto.QuitRequest() )
		finally:
			if self.proto.stage == proto.Stage.CLOSING:
				await self.close()
	
	async def on_StartTlsBeginEvent ( self, event: proto.StartTlsBeginEvent ) -> None:
		with upgrade_failed_if_error():
			await self.transport.starttls_client ( self.server_hostname )
