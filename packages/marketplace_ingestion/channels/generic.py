# packages/marketplace_ingestion/channels/generic.py
from ..column_mapper import GenericColumnMapper
from ..models import Channel, ParsedBatch, RawTable
from .base import ChannelParser


class GenericParser(ChannelParser):
    """Header-heuristic parser for channels without a dedicated layout."""

    header_markers = ("data", "date")

    def parse(self, table: RawTable, channel: Channel) -> ParsedBatch:
        return GenericColumnMapper().parse(table, channel)
