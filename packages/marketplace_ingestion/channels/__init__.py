# packages/marketplace_ingestion/channels/__init__.py
from typing import Dict, Type

from ..models import Channel
from .base import ChannelParser, ColumnSet
from .generic import GenericParser
from .mercado_livre import MercadoLivreParser
from .mercado_pago import MercadoPagoParser
from .shopee import ShopeeParser

PARSERS: Dict[Channel, Type[ChannelParser]] = {
    Channel.MERCADO_LIVRE: MercadoLivreParser,
    Channel.MERCADO_PAGO: MercadoPagoParser,
    Channel.SHOPEE: ShopeeParser,
}


def parser_for(channel: Channel) -> ChannelParser:
    """Dedicated parser for the channel, or the generic header mapper."""
    return PARSERS.get(channel, GenericParser)()


__all__ = [
    "ChannelParser",
    "ColumnSet",
    "GenericParser",
    "MercadoLivreParser",
    "MercadoPagoParser",
    "ShopeeParser",
    "PARSERS",
    "parser_for",
]
