from jinja2 import Environment, PackageLoader, select_autoescape

from comms.core.config import settings

email_templates = Environment(
    loader=PackageLoader("comms", "templates"),
    autoescape=select_autoescape(["html"]),
)
email_templates.globals["app_name"] = settings.APP_NAME


def render_email_html(template_name: str, **context) -> str:
    return email_templates.get_template(template_name).render(**context)
