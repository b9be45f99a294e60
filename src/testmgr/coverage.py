# src/testmgr/coverage.py

"""
Reads a Cobertura ``coverage.xml`` (as written by ``coverage xml``) into
per-file covered and uncovered line sets.

Structure consumed::

    <coverage line-rate="0.85">
      <packages><package><classes>
        <class filename="users/views.py">
          <lines><line number="1" hits="1"/></lines>
        </class>
      </classes></package></packages>
    </coverage>
"""

import xml.etree.ElementTree as ET
from pathlib import Path

import structlog
from attrs import define, field

from testmgr.exceptions import CoverageParseError
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("coverage")

DEFAULT_COVERAGE_FILE = "coverage.xml"


@define(slots=True)
class FileCoverage:
    path: str
    covered: set[int] = field(factory=set)
    uncovered: set[int] = field(factory=set)

    @property
    def total(self) -> int:
        return len(self.covered) + len(self.uncovered)

    @property
    def percent(self) -> float:
        if not self.total:
            return 100.0
        return 100.0 * len(self.covered) / self.total

    def add_line(self, number: int, hits: int) -> None:
        # The same line may be listed under several classes; any hit wins.
        if hits > 0:
            self.covered.add(number)
            self.uncovered.discard(number)
        elif number not in self.covered:
            self.uncovered.add(number)


def load_coverage(path: Path) -> dict[str, FileCoverage]:
    """
    Parses a Cobertura report. A missing file yields an empty mapping.

    Raises:
        CoverageParseError: the file exists but is not a readable Cobertura report.
    """
    if not path.is_file():
        log.info("No coverage report found", path=str(path))
        return {}

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise CoverageParseError(f"Invalid coverage XML in '{path}'", details=e) from e
    except OSError as e:
        raise CoverageParseError(f"Cannot read coverage report '{path}'", details=e) from e

    for elem in root.iter():
        if "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]
    if root.tag != "coverage":
        raise CoverageParseError(f"'{path}' is not a Cobertura report (root element <{root.tag}>)")

    files: dict[str, FileCoverage] = {}
    for cls in root.iter("class"):
        filename = cls.get("filename")
        if not filename:
            continue
        file_cov = files.setdefault(filename, FileCoverage(path=filename))
        for line in cls.iter("line"):
            try:
                number = int(line.get("number", ""))
                hits = int(line.get("hits", "0"))
            except ValueError:
                log.debug("Skipping malformed coverage line", filename=filename, attrs=dict(line.attrib))
                continue
            file_cov.add_line(number, hits)

    log.debug("Coverage report loaded", path=str(path), files=len(files))
    return files


# 🔼⚙️
