# =============================================================================
# NutriVision - Viewer Package
# =============================================================================
# This package contains the polling client that watches the server's latest
# analysis and renders each new state in the terminal.
# =============================================================================
