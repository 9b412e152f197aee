"""zkleader: crash-tolerant leader election over ZooKeeper.

Each process registers an ephemeral sequential peer node and races to
create an ephemeral leader record. An HTTP control surface reports the
election state and lets operators withdraw a process from (or return it
to) the election.
"""

__version__ = "0.1.0"
