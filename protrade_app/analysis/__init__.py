"""Technical analysis and market regime classification."""
