"""Streamlit front end for the pharmacy storefront."""
