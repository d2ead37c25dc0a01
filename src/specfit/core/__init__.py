"""Core module for specfit - data models and the fitting engine."""

import jax

# Likelihoods, Hessians and root finding need double precision.
jax.config.update("jax_enable_x64", True)
