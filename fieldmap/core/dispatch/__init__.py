# fieldmap/core/dispatch/__init__.py
"""
Dispatch interaction engine: the live field-service map core.

This package positions jobs and mobile workers on a shared map and drives
the dispatcher's interactions with them:

- ``domain`` - Job / TeamMember / GeofenceAlert / Coordinate types
- ``schemas`` - pydantic wire models for the backend API
- ``geo`` - bounding-box viewport fitting (pure functions)
- ``store`` - EntityStore: wholesale-refreshed collections
- ``polling`` - cancellable recurring refresh tasks
- ``selection`` - worker-select → job-tap → confirm → commit state machine
- ``route_builder`` - multi-stop route, optimizer hand-off, navigation URL
- ``alerts`` - AlertCenter: unread view, mark-read, relative time labels
- ``viewport`` - MapViewportController: debounced fit-to-markers
- ``engine`` - DispatchEngine: owns all of the above for one session

Rendering is the host UI's concern; this package only exposes state,
derived views and operations.
"""
