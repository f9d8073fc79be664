# =============================================================================
# NutriVision - Shared Package
# =============================================================================
# Data contracts shared by the analysis server and its clients.
# =============================================================================
