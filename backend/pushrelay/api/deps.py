from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pushrelay.core.database import get_session_factory
from pushrelay.core.vapid import KeyAuthority, get_key_authority
from pushrelay.services.dispatcher import DeliveryDispatcher
from pushrelay.services.push_transport import PushTransport, WebPushTransport
from pushrelay.services.subscription_registry import SubscriptionRegistry


def get_registry(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> SubscriptionRegistry:
    return SubscriptionRegistry(session_factory)


def get_transport() -> PushTransport:
    return WebPushTransport()


Registry = Annotated[SubscriptionRegistry, Depends(get_registry)]
Authority = Annotated[KeyAuthority, Depends(get_key_authority)]
Transport = Annotated[PushTransport, Depends(get_transport)]


def get_dispatcher(
    registry: Registry,
    authority: Authority,
    transport: Transport,
) -> DeliveryDispatcher:
    return DeliveryDispatcher(registry, authority.signing_context, transport)


Dispatcher = Annotated[DeliveryDispatcher, Depends(get_dispatcher)]
