"""
Core data and state layer.

This package contains:
- api_client: AtlasApprox REST client (celltypes, average, fraction detected, markers, ...)
- features: ordered feature sets used for add/remove edits
- plot_state: normalized plot state handed to chart renderers
- resolver: intent -> plot state resolution (async, fail-together)
- store: conversational plot-state slot with turn sequencing
- exports: FASTA / table / CSV export of the current plot state
"""
