# packages/marketplace_ingestion/channels/base.py
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple

from ..column_mapper import find_column
from ..models import Channel, ParsedBatch, RawTable


class ChannelParser(ABC):
    """
    Strategy turning one channel's report rows into canonical transactions.

    Subclasses declare the header markers used to locate the header row and
    the sheet names to prefer in multi-sheet workbooks.
    """

    header_markers: Tuple[str, ...] = ()
    preferred_sheets: Tuple[str, ...] = ()

    @abstractmethod
    def parse(self, table: RawTable, channel: Channel) -> ParsedBatch:
        """
        Parse a report table.

        Args:
            table: Header-keyed rows read from the uploaded file
            channel: Channel the rows belong to

        Returns:
            ParsedBatch with the generated transactions and row statistics
        """
        pass


class ColumnSet:
    """Resolved header per logical field for one report layout."""

    def __init__(
        self,
        headers: Sequence[str],
        candidates: Dict[str, Sequence[str]],
        exclude: Optional[Dict[str, Sequence[str]]] = None,
    ):
        exclude = exclude or {}
        self.columns: Dict[str, Optional[str]] = {
            name: find_column(headers, terms, exclude.get(name, ()))
            for name, terms in candidates.items()
        }

    def __contains__(self, name: str) -> bool:
        return self.columns.get(name) is not None

    def get(self, row: Dict[str, Any], name: str) -> Any:
        header = self.columns.get(name)
        return row.get(header, "") if header else ""
