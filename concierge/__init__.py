"""Pharmacy shopping assistant: Gemini tool calling over the storefront services."""
