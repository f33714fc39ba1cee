"""
Schema Mapper: 2-D cell ranges <-> ordered records

A dataset is a grid of rows. Depending on `dataAxis` each record is either a
row (header line is a row) or a column (header line is a column). Both cases
are handled by one line-oriented core: an axis strategy turns the grid into
"lines" (rows as-is, or columns via transpose) and back, so the extraction and
append logic below never branches on orientation.

Coordinates handed to the store are 1-based (row, column).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from datagatherer.common.config_models import DataAxis, TabConfig
from datagatherer.common.errors import ConfigurationError, SchemaMismatchError
from datagatherer.common.headers import header_properties
from datagatherer.common.utils import is_blank

Grid = List[List[Any]]
Record = Dict[str, Any]

__all__ = [
    "Grid",
    "Record",
    "RangePatch",
    "DestinationCursor",
    "AxisStrategy",
    "RowAxis",
    "ColumnAxis",
    "SchemaMapper",
]


@dataclass(frozen=True)
class RangePatch:
    """A rectangular block of values anchored at a 1-based cell."""
    start_row: int
    start_col: int
    values: List[List[Any]]

    @property
    def height(self) -> int:
        return len(self.values)

    @property
    def width(self) -> int:
        return max((len(r) for r in self.values), default=0)


@dataclass
class DestinationCursor:
    """Header and append position of a destination, read once per run."""
    dataset_id: str
    config: TabConfig
    header: List[Optional[str]]
    next_line: int  # 0-based line index of the next free record line

    @property
    def properties(self) -> List[str]:
        return [p for p in self.header if p is not None]


# ============================================================================
# Axis strategies
# ============================================================================

class AxisStrategy(ABC):
    """Maps a row-major grid to record-major lines and back."""
    axis: DataAxis

    @abstractmethod
    def to_lines(self, grid: Sequence[Sequence[Any]]) -> Grid:
        ...

    @abstractmethod
    def from_lines(self, lines: Sequence[Sequence[Any]]) -> Grid:
        ...

    @abstractmethod
    def cell(self, line: int, offset: int) -> Tuple[int, int]:
        """0-based (line, offset) -> 1-based (row, col)."""
        ...


class RowAxis(AxisStrategy):
    axis = DataAxis.ROW

    def to_lines(self, grid: Sequence[Sequence[Any]]) -> Grid:
        return [list(r) for r in grid]

    def from_lines(self, lines: Sequence[Sequence[Any]]) -> Grid:
        return [list(r) for r in lines]

    def cell(self, line: int, offset: int) -> Tuple[int, int]:
        return line + 1, offset + 1


class ColumnAxis(AxisStrategy):
    axis = DataAxis.COLUMN

    @staticmethod
    def _transpose(rows: Sequence[Sequence[Any]]) -> Grid:
        width = max((len(r) for r in rows), default=0)
        return [[r[i] if i < len(r) else "" for r in rows] for i in range(width)]

    def to_lines(self, grid: Sequence[Sequence[Any]]) -> Grid:
        return self._transpose(grid)

    def from_lines(self, lines: Sequence[Sequence[Any]]) -> Grid:
        return self._transpose(lines)

    def cell(self, line: int, offset: int) -> Tuple[int, int]:
        return offset + 1, line + 1


_STRATEGIES: Dict[DataAxis, AxisStrategy] = {
    DataAxis.ROW: RowAxis(),
    DataAxis.COLUMN: ColumnAxis(),
}


def _line_is_blank(line: Sequence[Any], skip_cells: int) -> bool:
    return all(is_blank(v) for v in line[skip_cells:])


# ============================================================================
# Mapper
# ============================================================================

class SchemaMapper:
    """Converts dataset snapshots to records and records to append patches."""

    def strategy(self, config: TabConfig) -> AxisStrategy:
        return _STRATEGIES[config.data_axis]

    def read_header(self, grid: Sequence[Sequence[Any]], config: TabConfig, dataset_id: str = "") -> List[Optional[str]]:
        """Property names along the record line, None for unmapped cells."""
        lines = self.strategy(config).to_lines(grid)
        idx = config.property_lookup_row - 1
        if idx >= len(lines):
            return []
        return header_properties(lines[idx], config.skip_cells, dataset_id)

    def to_records(self, grid: Sequence[Sequence[Any]], config: TabConfig, dataset_id: str = "") -> List[Record]:
        """
        Extract records until the first fully blank record line.

        Raises:
            ConfigurationError: duplicate property names
            SchemaMismatchError: no property header at all
        """
        header = self.read_header(grid, config, dataset_id)
        if not any(p is not None for p in header):
            raise SchemaMismatchError(f"No property header found in '{dataset_id or 'dataset'}'")

        lines = self.strategy(config).to_lines(grid)
        skip = config.skip_cells
        records: List[Record] = []
        for line in lines[config.skip_lines:]:
            if _line_is_blank(line, skip):
                break
            cells = line[skip:]
            rec: Record = {}
            for j, prop in enumerate(header):
                if prop is None:
                    continue
                rec[prop] = cells[j] if j < len(cells) else ""
            records.append(rec)
        return records

    def next_line(self, grid: Sequence[Sequence[Any]], config: TabConfig) -> int:
        """0-based line index just after the last populated record line."""
        lines = self.strategy(config).to_lines(grid)
        last = config.skip_lines - 1
        for i in range(config.skip_lines, len(lines)):
            if not _line_is_blank(lines[i], config.skip_cells):
                last = i
        return last + 1

    def open_cursor(self, grid: Sequence[Sequence[Any]], config: TabConfig, dataset_id: str) -> DestinationCursor:
        header = self.read_header(grid, config, dataset_id)
        if not any(p is not None for p in header):
            raise SchemaMismatchError(f"Destination '{dataset_id}' has no property header")
        return DestinationCursor(
            dataset_id=dataset_id,
            config=config,
            header=header,
            next_line=self.next_line(grid, config),
        )

    def to_rows(self, records: Sequence[Mapping[str, Any]], cursor: DestinationCursor) -> RangePatch:
        """
        Build the append patch for `records` at the cursor position.
        Properties missing from the destination header are dropped.

        Raises:
            SchemaMismatchError: a record shares no property with the header
        """
        known = set(cursor.properties)
        lines: Grid = []
        for n, rec in enumerate(records):
            if known.isdisjoint(rec.keys()):
                raise SchemaMismatchError(
                    f"Record #{n} has no property in common with '{cursor.dataset_id}' header"
                )
            lines.append([_cell_value(rec.get(p)) if p is not None else "" for p in cursor.header])

        strategy = self.strategy(cursor.config)
        row, col = strategy.cell(cursor.next_line, cursor.config.skip_cells)
        return RangePatch(start_row=row, start_col=col, values=strategy.from_lines(lines) if lines else [])

    def to_grid(self, records: Sequence[Mapping[str, Any]], properties: Sequence[str], config: TabConfig) -> Grid:
        """Full grid (header region + records) for a fresh dataset."""
        dups = len(set(properties)) != len(properties)
        if dups:
            raise ConfigurationError(f"Duplicate property names: {list(properties)}")
        pad = [""] * config.skip_cells
        lines: Grid = [list(pad) for _ in range(config.skip_lines)]
        lines[config.property_lookup_row - 1] = pad + list(properties)
        for rec in records:
            lines.append(pad + [_cell_value(rec.get(p)) for p in properties])
        return self.strategy(config).from_lines(lines)

    def locate(self, config: TabConfig, header: Sequence[Optional[str]], index: int, prop: str) -> Tuple[int, int]:
        """1-based cell of property `prop` in record number `index`."""
        try:
            offset = list(header).index(prop)
        except ValueError:
            raise SchemaMismatchError(f"Property '{prop}' not in header") from None
        return self.strategy(config).cell(config.skip_lines + index, config.skip_cells + offset)

    def add_property(self, config: TabConfig, header: Sequence[Optional[str]], prop: str) -> RangePatch:
        """Patch appending a new property name after the last header cell."""
        if prop in header:
            raise ConfigurationError(f"Property '{prop}' already exists")
        strategy = self.strategy(config)
        row, col = strategy.cell(config.property_lookup_row - 1, config.skip_cells + len(header))
        return RangePatch(start_row=row, start_col=col, values=[[prop]])

    def line_patch(
        self,
        grid: Sequence[Sequence[Any]],
        config: TabConfig,
        header: Sequence[Optional[str]],
        index: int,
        record: Mapping[str, Any],
    ) -> RangePatch:
        """Patch rewriting record number `index` in place; unmapped cells keep their value."""
        return self.lines_patch(grid, config, header, index, [record])

    def lines_patch(
        self,
        grid: Sequence[Sequence[Any]],
        config: TabConfig,
        header: Sequence[Optional[str]],
        index: int,
        records: Sequence[Mapping[str, Any]],
    ) -> RangePatch:
        """One patch rewriting consecutive records starting at number `index`."""
        strategy = self.strategy(config)
        lines = strategy.to_lines(grid)
        out: Grid = []
        for n, record in enumerate(records):
            line_no = config.skip_lines + index + n
            existing = lines[line_no][config.skip_cells:] if line_no < len(lines) else []
            values = []
            for j, p in enumerate(header):
                if p is not None and p in record:
                    values.append(_cell_value(record[p]))
                else:
                    values.append(existing[j] if j < len(existing) else "")
            out.append(values)
        row, col = strategy.cell(config.skip_lines + index, config.skip_cells)
        return RangePatch(start_row=row, start_col=col, values=strategy.from_lines(out))


def _cell_value(value: Any) -> Any:
    return "" if value is None else value
