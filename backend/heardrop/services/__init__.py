"""
HEARDROP Backend — Services Layer
===================================

What:  Business logic between routes (HTTP) and the database.
How:   Each service is a stateless singleton; the request's AsyncSession is
       passed into every call, so a route's work commits or rolls back as one.

Service Inventory:
    - AuthService / PasswordService / AuditService: accounts, login
      protection, password policy, security audit log
    - BrandService / ShopService / DropService: catalogue and drop lifecycle
    - FavoritesService / NotificationService: "My HEARDROP" and the
      notification jobs
    - JourneyService: route planning on top of MapboxService
    - SpotService: Street Spotted posts and moderation
    - ImportService / AdminService: CSV imports, exports, dashboard, jobs
    - ContactService: public contact form and the admin inbox
    - FileService: upload validation and storage
    - GeminiArtworkService (ArtworkGenerator): brand logo and banner images
    - resilience: circuit breaker shared by the external clients
"""
