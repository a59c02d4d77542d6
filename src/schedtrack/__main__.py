from schedtrack.interface.cli import app

app(prog_name="sched")
