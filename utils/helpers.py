import psutil


def is_interface_up(interface):
    stats = psutil.net_if_stats().get(interface)
    return stats.isup if stats else False


def parse_iface_list(value):
    """'eth0, eth1' -> ['eth0', 'eth1']; empty input gives []."""
    return [s.strip() for s in (value or "").split(",") if s.strip()]
