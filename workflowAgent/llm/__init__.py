"""Language-model capability, stream chunk types and endpoint fallback."""
