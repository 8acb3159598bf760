"""
Generators — render host files from the run's typed models.

Each generator is a pure function of a ServiceDescriptor (or plain
settings) returning a ``RenderedFile``. Nothing here touches the host;
the deployer writes the results through the CommandRunner.
"""
