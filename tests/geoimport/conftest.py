"""Shared KML samples and builders for geoimport tests."""

from __future__ import annotations

import io
import zipfile

import pytest

from geoimport.layers.layer import GeometryFeature, Layer, LayerGroup


SCENARIO_A_KML = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Feeder</name>
      <LineString>
        <coordinates>10,20,0 11,21,0</coordinates>
      </LineString>
    </Placemark>
  </Document>
</kml>
"""

MIXED_KML = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <name>Survey</name>
    <Folder>
      <Placemark>
        <name>Pole 1</name>
        <Point><coordinates>105.80,21.02,0</coordinates></Point>
      </Placemark>
      <Placemark>
        <name>Route A</name>
        <description>Main line</description>
        <LineString>
          <coordinates>
            105.80,21.02,0 105.81,21.03,0 105.82,21.05,0
          </coordinates>
        </LineString>
      </Placemark>
      <Placemark>
        <name>Site</name>
        <Polygon>
          <outerBoundaryIs>
            <LinearRing>
              <coordinates>
                105.70,20.90,0 105.75,20.90,0 105.75,20.95,0 105.70,20.90,0
              </coordinates>
            </LinearRing>
          </outerBoundaryIs>
        </Polygon>
      </Placemark>
      <Placemark>
        <name>Route B</name>
        <LineString>
          <coordinates>105.90,21.10 105.95,21.12</coordinates>
        </LineString>
      </Placemark>
    </Folder>
  </Document>
</kml>
"""

EMPTY_KML = """\
<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <Placemark>
      <name>Too short</name>
      <LineString><coordinates>10,20,0</coordinates></LineString>
    </Placemark>
  </Document>
</kml>
"""


def make_kmz(entries: dict[str, str | bytes]) -> bytes:
    """Build an in-memory zip archive."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buf.getvalue()


def line_kml(count: int) -> str:
    """A document with `count` two-point LineString placemarks."""
    placemarks = "".join(
        f"<Placemark><name>L{i}</name><LineString><coordinates>"
        f"{100 + i * 0.01},{10 + i * 0.01},0 {100 + i * 0.01 + 0.005},{10 + i * 0.01 + 0.005},0"
        f"</coordinates></LineString></Placemark>"
        for i in range(count)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<kml xmlns="http://www.opengis.net/kml/2.2"><Document>'
        f"{placemarks}</Document></kml>"
    )


@pytest.fixture
def line_group() -> LayerGroup:
    lines = tuple(
        GeometryFeature("LineString", [[105.0 + i, 21.0], [105.5 + i, 21.5]], {"name": f"L{i}"})
        for i in range(3)
    )
    points = (GeometryFeature("Point", [105.2, 21.1, 0.0], {"name": "P"}),)
    return LayerGroup(
        id="group-1",
        name="survey",
        layers=(
            Layer("linestring-1", "LineString (3)", "#2196F3", lines,
                  bounds=[[21.0, 105.0], [21.5, 107.5]]),
            Layer("point-1", "Point (1)", "#4CAF50", points,
                  bounds=[[21.1, 105.2], [21.1, 105.2]]),
        ),
        bounds=[[21.0, 105.0], [21.5, 107.5]],
    )


@pytest.fixture
def scenario_a_kml() -> str:
    return SCENARIO_A_KML


@pytest.fixture
def mixed_kml() -> str:
    return MIXED_KML


@pytest.fixture
def empty_kml() -> str:
    return EMPTY_KML


@pytest.fixture
def kmz():
    return make_kmz


@pytest.fixture
def many_lines_kml():
    return line_kml
