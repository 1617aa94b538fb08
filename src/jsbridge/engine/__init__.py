"""
Embedded JavaScript engine.

A pure Python lexer, parser, bytecode compiler and virtual machine with
memory, time and stack-depth limits. Embedders use :mod:`jsbridge.engine.api`.
"""
