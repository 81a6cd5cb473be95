"""
Matching & Group Formation

Partitions the eligible pool into local, same-stage groups of dads and
manages the approve / delete lifecycle of the groups it creates.
"""
