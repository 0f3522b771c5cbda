from gnet_proxy.cmd.cli import app

app(prog_name="gnet-proxy")
