"""Stateless signer / verifier."""
