from . import (
    bookings as bookings,
    cron as cron,
    professionals as professionals,
    prometheus as prometheus,
)
