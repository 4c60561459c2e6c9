"""Client-side support library for the map notes web client.

The browser client draws maps and dialogs with third-party toolkits; this
package holds the logic those toolkits are driven by, so it can be reused
and tested without a browser.

Submodules:
    - api: HTTP client for the ``/api`` endpoints.
    - geometry: Projection helpers and image overlay extent edits.
    - features: GeoJSON features for markers and the user's location.
    - gestures: Long-press (touch) and double-click (desktop) detection.
    - geolocation: State of a continuous position watch.
    - workflow: Marker creation flow and panel navigation state.
"""
