"""Patch generation for injected pods.

The engine only decides *whether* a pod may be mutated; the generator here decides *what* changes.
Alternative generators only need to satisfy `sidecar.PatchGenerator`.
"""
