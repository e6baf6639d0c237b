"""Per-entity configuration for the admin back-office."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from folio.table import Column, ComputedAccessor, FieldAccessor, LocalizedAccessor

MB = 1024 * 1024
IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif", "image/svg+xml")
ICON_MIME_TYPES = IMAGE_MIME_TYPES + ("image/x-icon", "image/vnd.microsoft.icon")
PDF_MIME_TYPES = ("application/pdf",)
LOCAL_IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp")
ICON_CLASS_PREFIXES = ("fa", "bi", "material-icons", "icon-")


@dataclass(frozen=True)
class AssetField:
    name: str
    folder: str
    store: str = "blob"
    mime_types: Tuple[str, ...] = IMAGE_MIME_TYPES
    max_bytes: int = 5 * MB
    allow_icon_class: bool = False


@dataclass(frozen=True)
class ForeignKey:
    field: str
    table: str
    message: str


@dataclass(frozen=True)
class ReferenceGuard:
    table: str
    column: str
    message: str


@dataclass(frozen=True)
class LinkTable:
    name: str
    table: str
    owner_column: str
    target_column: str
    target_table: str


@dataclass(frozen=True)
class EntityConfig:
    name: str
    table: str
    label: str
    localized_fields: Tuple[str, ...] = ("title",)
    fields: Tuple[str, ...] = ()
    search_fields: Tuple[str, ...] = ("title",)
    required_fields: Tuple[str, ...] = ()
    rich_text_fields: Tuple[str, ...] = ()
    email_fields: Tuple[str, ...] = ()
    sortable_fields: Tuple[str, ...] = ("created_at", "updated_at")
    filter_fields: Tuple[str, ...] = ()
    assets: Tuple[AssetField, ...] = ()
    foreign_keys: Tuple[ForeignKey, ...] = ()
    guards: Tuple[ReferenceGuard, ...] = ()
    links: Tuple[LinkTable, ...] = ()
    columns: Tuple[Column, ...] = ()
    default_sort: str = "created_at"
    singleton: bool = False

    def asset(self, name: str) -> AssetField | None:
        for item in self.assets:
            if item.name == name:
                return item
        return None

    def link(self, name: str) -> LinkTable | None:
        for item in self.links:
            if item.name == name:
                return item
        return None

    def writable_fields(self) -> set[str]:
        names = set(self.localized_fields) | set(self.fields)
        names |= {a.name for a in self.assets}
        names |= {fk.field for fk in self.foreign_keys}
        return names

    def table_columns(self) -> Tuple[Column, ...]:
        if self.columns:
            return self.columns
        cols = []
        if self.localized_fields:
            first = self.localized_fields[0]
            cols.append(Column(first.replace("_", " ").title(), LocalizedAccessor(first), first in self.sortable_fields))
        cols.append(Column("Created", FieldAccessor("created_at"), True))
        return tuple(cols)


def _is_active(item: dict) -> str:
    return "Active" if item.get("is_active") else "Inactive"


def _stars(item: dict) -> str:
    try:
        return "★" * max(0, min(5, int(item.get("star") or 0)))
    except (TypeError, ValueError):
        return ""


ENTITIES: Dict[str, EntityConfig] = {}


def register(config: EntityConfig) -> EntityConfig:
    ENTITIES[config.name] = config
    return config


def get_config(name: str) -> EntityConfig | None:
    return ENTITIES.get(name)


def list_configs(singleton: bool | None = None) -> list[EntityConfig]:
    items = list(ENTITIES.values())
    if singleton is None:
        return items
    return [c for c in items if c.singleton == singleton]


# Articles
register(EntityConfig(
    name="article-categories",
    table="article_categories",
    label="Article categories",
    localized_fields=("title", "description"),
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "title"),
    assets=(AssetField("image", "article-categories"),),
    guards=(ReferenceGuard("articles", "article_category_id", "Cannot delete: Category is being used by articles"),),
))
register(EntityConfig(
    name="article-tags",
    table="article_tags",
    label="Article tags",
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "title"),
    guards=(ReferenceGuard("articles", "article_tag_id", "Cannot delete: Tag is being used by articles"),),
))
register(EntityConfig(
    name="articles",
    table="articles",
    label="Articles",
    localized_fields=("title", "description", "content"),
    fields=("slug", "is_published"),
    required_fields=("title",),
    rich_text_fields=("content",),
    sortable_fields=("created_at", "updated_at", "title"),
    filter_fields=("article_category_id", "article_tag_id"),
    assets=(AssetField("image", "articles"),),
    foreign_keys=(
        ForeignKey("article_category_id", "article_categories", "Invalid article category ID"),
        ForeignKey("article_tag_id", "article_tags", "Invalid article tag ID"),
    ),
))

# Home and about
register(EntityConfig(
    name="about",
    table="abouts",
    label="About",
    localized_fields=("title", "description"),
    required_fields=("title",),
    rich_text_fields=("description",),
    assets=(AssetField("image", "about"),),
))
register(EntityConfig(
    name="home-hero",
    table="home_heros",
    label="Home hero",
    localized_fields=("title", "subtitle", "description"),
    required_fields=("title",),
    assets=(AssetField("image", "home-hero"),),
))
register(EntityConfig(
    name="certificates",
    table="certificates",
    label="Certificates",
    localized_fields=("title", "description"),
    fields=("issued_by", "issued_at", "credential_url"),
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "title", "issued_at"),
    assets=(
        AssetField("image", "certificates", store="local", mime_types=LOCAL_IMAGE_TYPES, max_bytes=2 * MB),
        AssetField("pdf", "certificates", mime_types=PDF_MIME_TYPES),
    ),
    links=(LinkTable("skills", "certificate_skills", "certificate_id", "skill_id", "skills"),),
))
register(EntityConfig(
    name="projects",
    table="projects",
    label="Projects",
    localized_fields=("title", "description"),
    fields=("slug", "url", "repository_url", "is_featured"),
    required_fields=("title",),
    rich_text_fields=("description",),
    sortable_fields=("created_at", "updated_at", "title"),
    assets=(AssetField("thumbnail", "projects", store="local", mime_types=LOCAL_IMAGE_TYPES),),
    links=(LinkTable("skills", "project_skills", "project_id", "skill_id", "skills"),),
))
register(EntityConfig(
    name="project-images",
    table="project_images",
    label="Project images",
    localized_fields=("caption",),
    search_fields=("caption",),
    fields=("order_no",),
    sortable_fields=("created_at", "order_no"),
    filter_fields=("project_id",),
    assets=(AssetField("image", "project-images"),),
    foreign_keys=(ForeignKey("project_id", "projects", "Invalid project ID"),),
))

# Banners
register(EntityConfig(
    name="callme-banners",
    table="callme_banners",
    label="Call-me banners",
    localized_fields=("title", "description"),
    required_fields=("title",),
    assets=(AssetField("image", "callme-banners"),),
    guards=(ReferenceGuard("callme_banner_items", "banner_id", "Cannot delete: Banner has items"),),
))
register(EntityConfig(
    name="callme-banner-items",
    table="callme_banner_items",
    label="Call-me banner items",
    required_fields=("title",),
    filter_fields=("banner_id",),
    assets=(AssetField("icon", "callme-banner-icons", allow_icon_class=True),),
    foreign_keys=(ForeignKey("banner_id", "callme_banners", "Invalid banner ID"),),
))
register(EntityConfig(
    name="call-to-actions",
    table="call_to_actions",
    label="Call to action",
    localized_fields=("title", "description", "button_text"),
    fields=("button_link",),
    required_fields=("title",),
))
register(EntityConfig(
    name="hire-me-banners",
    table="hire_me_banners",
    label="Hire-me banners",
    localized_fields=("title", "description"),
    fields=("free_date", "is_active"),
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "free_date"),
))

# Contact
register(EntityConfig(
    name="contact-forms",
    table="contact_forms",
    label="Contact form submissions",
    localized_fields=(),
    fields=("name", "email", "subject", "message"),
    email_fields=("email",),
    search_fields=("name", "email", "subject"),
    sortable_fields=("created_at", "name", "email"),
    columns=(
        Column("Name", FieldAccessor("name"), True),
        Column("Email", FieldAccessor("email"), True),
        Column("Subject", FieldAccessor("subject")),
        Column("Received", FieldAccessor("created_at"), True),
    ),
))

# Experience
register(EntityConfig(
    name="experience-categories",
    table="experience_categories",
    label="Experience categories",
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "title"),
    guards=(ReferenceGuard("experiences", "experience_category_id", "Cannot delete: Category is being used by experiences"),),
))
register(EntityConfig(
    name="experiences",
    table="experiences",
    label="Experiences",
    localized_fields=("title", "description", "company"),
    fields=("start_date", "end_date", "is_current", "location"),
    search_fields=("title", "company"),
    required_fields=("title",),
    rich_text_fields=("description",),
    sortable_fields=("created_at", "updated_at", "start_date"),
    filter_fields=("experience_category_id",),
    assets=(AssetField("company_logo", "experiences"),),
    foreign_keys=(ForeignKey("experience_category_id", "experience_categories", "Invalid experience category ID"),),
    links=(LinkTable("skills", "experience_skills", "experience_id", "skill_id", "skills"),),
))

# Services
register(EntityConfig(
    name="service-benefits",
    table="service_benefits",
    label="Service benefits",
    localized_fields=("title", "description"),
    required_fields=("title",),
    sortable_fields=("created_at", "title"),
    guards=(
        ReferenceGuard("featured_services", "benefit_id", "Cannot delete: This benefit is being used by other services"),
        ReferenceGuard("service_processes", "benefit_id", "Cannot delete: This benefit is being used by other services"),
    ),
))
register(EntityConfig(
    name="brands",
    table="brands",
    label="Brands",
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "title"),
    assets=(AssetField("image", "brands"),),
    columns=(
        Column("Title", LocalizedAccessor("title")),
        Column("Logo", FieldAccessor("image")),
        Column("Created", FieldAccessor("created_at"), True),
    ),
))
register(EntityConfig(
    name="faqs",
    table="faqs",
    label="FAQ",
    localized_fields=("question", "answer"),
    search_fields=("question", "answer"),
    required_fields=("question", "answer"),
    rich_text_fields=("answer",),
))
register(EntityConfig(
    name="featured-services",
    table="featured_services",
    label="Featured services",
    localized_fields=("title", "description"),
    required_fields=("title",),
    filter_fields=("benefit_id", "skill_id"),
    assets=(AssetField("icon", "featured-icons", store="local", mime_types=LOCAL_IMAGE_TYPES, allow_icon_class=True),),
    foreign_keys=(
        ForeignKey("benefit_id", "service_benefits", "Invalid benefit ID"),
        ForeignKey("skill_id", "skills", "Invalid skill ID"),
    ),
))
register(EntityConfig(
    name="service-heroes",
    table="service_heroes",
    label="Service heroes",
    localized_fields=("title", "subtitle", "description"),
    required_fields=("title",),
    assets=(AssetField("icon", "service-icons", store="local", mime_types=LOCAL_IMAGE_TYPES, allow_icon_class=True),),
))
register(EntityConfig(
    name="package-benefits",
    table="package_benefits",
    label="Package benefits",
    required_fields=("title",),
    guards=(ReferenceGuard("package_pricing", "benefit_id", "Cannot delete: This benefit is being used in package pricing"),),
))
register(EntityConfig(
    name="package-exclusions",
    table="package_exclusions",
    label="Package exclusions",
    required_fields=("title",),
    guards=(ReferenceGuard("package_pricing", "exclusion_id", "Cannot delete: This exclusion is being used in package pricing"),),
))
register(EntityConfig(
    name="package-pricing",
    table="package_pricing",
    label="Package pricing",
    localized_fields=("title", "description", "price"),
    fields=("is_popular",),
    required_fields=("title", "price"),
    filter_fields=("benefit_id", "exclusion_id"),
    foreign_keys=(
        ForeignKey("benefit_id", "package_benefits", "Invalid package benefit ID"),
        ForeignKey("exclusion_id", "package_exclusions", "Invalid package exclusion ID"),
    ),
))
register(EntityConfig(
    name="process-activities",
    table="process_activities",
    label="Process activities",
    localized_fields=("title", "description"),
    required_fields=("title",),
    guards=(
        ReferenceGuard(
            "service_process_activity_links",
            "process_activity_id",
            "Cannot delete: This activity is being used by service processes",
        ),
    ),
))
register(EntityConfig(
    name="service-processes",
    table="service_processes",
    label="Service processes",
    localized_fields=("title", "description"),
    fields=("order_no", "is_active"),
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "order_no"),
    filter_fields=("benefit_id", "is_active"),
    assets=(AssetField("icon", "process-icons", store="local", mime_types=LOCAL_IMAGE_TYPES, allow_icon_class=True),),
    foreign_keys=(ForeignKey("benefit_id", "service_benefits", "Invalid benefit ID"),),
    links=(
        LinkTable(
            "activities",
            "service_process_activity_links",
            "service_process_id",
            "process_activity_id",
            "process_activities",
        ),
    ),
    columns=(
        Column("Order", FieldAccessor("order_no"), True),
        Column("Title", LocalizedAccessor("title")),
        Column("Status", ComputedAccessor("status", _is_active)),
    ),
))
register(EntityConfig(
    name="promise-items",
    table="promise_items",
    label="Promise items",
    localized_fields=("title", "description"),
    required_fields=("title",),
    assets=(AssetField("icon", "promise-icons", store="local", mime_types=LOCAL_IMAGE_TYPES, allow_icon_class=True),),
))
register(EntityConfig(
    name="tech-stack-skills",
    table="tech_stack_skills",
    label="Tech stack skills",
    required_fields=("title",),
    sortable_fields=("created_at", "title"),
    guards=(ReferenceGuard("tech_stacks", "tech_stack_skill_id", "Cannot delete: This skill is being used by tech stacks"),),
))
register(EntityConfig(
    name="tech-stacks",
    table="tech_stacks",
    label="Tech stacks",
    required_fields=("title",),
    sortable_fields=("created_at", "title"),
    filter_fields=("tech_stack_skill_id",),
    assets=(AssetField("icon", "tech-stack-icons", store="local", mime_types=LOCAL_IMAGE_TYPES, allow_icon_class=True),),
    foreign_keys=(ForeignKey("tech_stack_skill_id", "tech_stack_skills", "Invalid tech stack skill ID"),),
))
register(EntityConfig(
    name="testimonial-categories",
    table="testimonial_categories",
    label="Testimonial categories",
    required_fields=("title",),
    guards=(
        ReferenceGuard("testimonials", "testimonial_category_id", "Cannot delete: Category is being used in testimonials"),
    ),
))
register(EntityConfig(
    name="testimonials",
    table="testimonials",
    label="Testimonials",
    localized_fields=("job", "message"),
    fields=("name", "star", "year"),
    search_fields=("message",),
    required_fields=("message",),
    sortable_fields=("created_at", "updated_at", "name", "star", "year"),
    filter_fields=("testimonial_category_id",),
    assets=(AssetField("profile", "testimonial-profiles", store="local", mime_types=LOCAL_IMAGE_TYPES),),
    foreign_keys=(ForeignKey("testimonial_category_id", "testimonial_categories", "Invalid testimonial category ID"),),
    columns=(
        Column("Name", FieldAccessor("name"), True),
        Column("Job", LocalizedAccessor("job")),
        Column("Rating", ComputedAccessor("rating", _stars)),
        Column("Year", FieldAccessor("year"), True),
    ),
))

# Skills
register(EntityConfig(
    name="skill-categories",
    table="skill_categories",
    label="Skill categories",
    localized_fields=("title", "description"),
    required_fields=("title",),
    assets=(AssetField("icon", "skill-category-icons", mime_types=ICON_MIME_TYPES, allow_icon_class=True),),
    guards=(ReferenceGuard("skills", "skill_category_id", "Cannot delete: Category has associated skills"),),
))
register(EntityConfig(
    name="skills",
    table="skills",
    label="Skills",
    localized_fields=("title", "description", "long_experience"),
    fields=("percent_skills",),
    required_fields=("title",),
    sortable_fields=("created_at", "updated_at", "percent_skills"),
    filter_fields=("skill_category_id",),
    assets=(AssetField("icon", "skill-icons", mime_types=ICON_MIME_TYPES, allow_icon_class=True),),
    foreign_keys=(ForeignKey("skill_category_id", "skill_categories", "Invalid skill category ID"),),
))

# Web settings
register(EntityConfig(
    name="social-media",
    table="social_media",
    label="Social media",
    fields=("link",),
    required_fields=("title",),
    assets=(AssetField("icon", "social-media-icons", store="local", mime_types=LOCAL_IMAGE_TYPES, allow_icon_class=True),),
))
register(EntityConfig(
    name="web-settings",
    table="web_settings",
    label="Web settings",
    localized_fields=("title_website", "description"),
    fields=("copyright",),
    search_fields=(),
    required_fields=("title_website",),
    assets=(
        AssetField("logo", "web-assets", store="local", mime_types=LOCAL_IMAGE_TYPES),
        AssetField("favicon", "web-assets", store="local", mime_types=LOCAL_IMAGE_TYPES, max_bytes=1 * MB),
        AssetField("cv", "web-assets", mime_types=PDF_MIME_TYPES),
        AssetField("portfolio", "web-assets", mime_types=PDF_MIME_TYPES),
    ),
    singleton=True,
))
register(EntityConfig(
    name="contact",
    table="contacts",
    label="Contact information",
    localized_fields=("location",),
    fields=("email", "no_phone"),
    email_fields=("email",),
    search_fields=(),
    required_fields=("location",),
    singleton=True,
))
register(EntityConfig(
    name="privacy-policy",
    table="privacy_policies",
    label="Privacy policy",
    localized_fields=("title", "content"),
    required_fields=("title", "content"),
    rich_text_fields=("content",),
    singleton=True,
))
register(EntityConfig(
    name="cookie-policy",
    table="cookie_policies",
    label="Cookie policy",
    localized_fields=("title", "content"),
    required_fields=("title", "content"),
    rich_text_fields=("content",),
    singleton=True,
))
register(EntityConfig(
    name="terms-of-service",
    table="terms_of_service",
    label="Terms of service",
    localized_fields=("title", "content"),
    required_fields=("title", "content"),
    rich_text_fields=("content",),
    singleton=True,
))
