"""Checkout PIX: Black Cat payments with UTMify attribution."""
