"""DroneGarden service-booking backend and offline client core.

The backend half (``main``, ``services``, ``repositories``, ``models``)
serves the REST API used by clients and administrators. The
``dronegarden.offline`` subpackage holds the client-side resilience layer:
persistent cache, network monitor, API client, notification dispatch and
the service-worker caching strategies.
"""
