# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines an APIRouter for one feature:
#   - partners.py: directory, intake, admin partner management
#   - contacts.py: contact form leads
#   - faqs.py: public FAQ listing and admin CRUD
#   - seo.py: SEO admin, sitemap.xml, robots.txt, redirect middleware
#   - analytics.py: event/performance intake, GA4 MP proxy, IP exclusions
#   - tracker.py: live-view heartbeats
#   - media.py: video proxy and cache administration
#   - blog.py: Directus blog bridge
#   - csrf.py: CSRF token issuance
#   - admin.py: API keys and audit trail
# =============================================================================
