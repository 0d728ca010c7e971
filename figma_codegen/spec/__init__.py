"""Token vocabulary, token resolution, layout inference and validation.

Modules are imported directly (figma_codegen.spec.layout, ...); the
validation gate depends on the emitter, which depends on the resolvers.
"""
