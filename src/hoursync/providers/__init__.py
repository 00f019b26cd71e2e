"""
Remote providers.

Components:
- models.py: typed views of provider JSON + Parsed/SchemaMismatch results
- http.py: response decoding and error classification shared by both clients
- harvest.py: time-tracking client (read-only)
- notion.py: workspace client (read + serialized writes) and write payload builders
"""
