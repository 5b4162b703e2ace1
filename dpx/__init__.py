"""Docker Probe eXporter (DPX).

Pull-based Prometheus exporter for a single Docker host that:
 - probes the Docker Engine API once per scrape
 - keeps one metric tracker per live container (and optionally volume/image)
 - drops a tracker's series as soon as its entity disappears

Each scrape recomputes the world from the live entity list; nothing persists.
"""

__version__ = "1.0.0"
