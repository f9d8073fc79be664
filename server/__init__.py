# =============================================================================
# NutriVision - Server Package
# =============================================================================
# This package contains the server-side components responsible for accepting
# food photo uploads, dispatching background analysis to the multimodal
# oracle, normalizing its answers, and holding the latest result.
# =============================================================================
