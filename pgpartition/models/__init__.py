"""Model support for partitioned tables."""

from pgpartition.models.partitioned import PartitionedMixin, partition_table_args

__all__ = ["PartitionedMixin", "partition_table_args"]
